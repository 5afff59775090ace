"""
LawBridge - Legal Case Management Service
=========================================

Role-based case management for advocates, paralegals, mediators,
arbitrators, clients and admins:
1. Case access control (ownership, sharing, admin override)
2. Tasks, hearings and notifications over a REST API
3. Live updates pushed to connected clients by room
"""

__version__ = "1.0.0"
