"""
FoodFlow Backend: API Routes Package
=====================================

Route Inventory:
    - recipes.py:        POST /recipes/{id}/like          (toggle like)
                         GET  /recipes/{id}/like          (caller's like status)
                         GET  /recipes/{id}/like-count    (reconciled count)
    - notifications.py:  GET  /notifications              (list + unread count)
                         GET  /notifications/unread
                         GET  /notifications/count
                         PUT|POST /notifications/{id}/read
                         PUT|POST /notifications/read-all
    - recognition.py:    POST /ingredients/recognition/text
                         POST /ingredients/recognition/image
    - health.py:         GET  /health

Routes stay thin: read the request, call one service method, return its
schema. Errors are raised as FoodFlowError subclasses and formatted by the
handlers in main.py.
"""
