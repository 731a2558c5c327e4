"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Each external collaborator has Mock (development) and Real (production)
implementations.

Services:
    - orders: lifecycle controller, factory, store and transition table
    - catalog: authoritative menu prices (database or remote API)
    - broadcast: real-time fan-out to kitchen displays
    - notifications: Twilio SMS / WhatsApp customer messages
    - board: Trello kitchen board mirror (driven by Celery)
"""
