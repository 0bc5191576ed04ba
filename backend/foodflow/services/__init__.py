"""
FoodFlow Backend: Services Layer
=================================

What:  Business logic between the routes (HTTP) and the models (persistence).
How:   Services take the request's AsyncSession as an argument, flush but
       never commit, and raise FoodFlowError subclasses that the handlers
       in main.py turn into responses.

Service Inventory:
    - LikeService:         like toggle, race absorption, count reconciliation
    - NotificationService: like notifications and their read state
    - UserService:         user id → display name, behind a bounded TTL cache
    - VisionService (abstract) / GeminiService: ingredient recognition
    - RecognitionService:  upload validation in front of the vision provider
"""
