"""
Booking API - backend for the multi-tenant sports facility platform

Responsibilities:
- Namespaced settings (app, Mercado Pago) resolved once at startup
- Facility administration pages for super admins
- Opponent matching ("find a rival") with real-time notifications
- Mercado Pago checkout preferences and webhooks
- Waiting list boundary (not implemented yet)
"""
