"""
Infrastructure Package
======================

Abstraction layers for external dependencies.

Modules:
    - payments: Payment provider abstraction (Stripe, mock)
    - email: Email service abstraction (SMTP, mock)
    - container: Service container wiring providers into domain services
"""
