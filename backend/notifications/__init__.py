"""
Notification system for the Exclusimmo property marketplace.

This module handles:
- Creating in-app notifications for users and admins (single and bulk)
- Sending the email copy via Resend according to user preferences
- The scheduled subscription expiry sweep and weekly digest
- Notification analytics for the admin dashboard

Components are wired by notifications.engine.build_engine().
"""

from .dispatcher import NotificationDispatcher, build_dedup_key
from .email_sender import EmailGateway, ResendEmailGateway, TemplateRepository
from .notification_store import NotificationStore
from .profile_store import ActivityLog, ProfileStore

__all__ = [
    'NotificationDispatcher',
    'build_dedup_key',
    'EmailGateway',
    'ResendEmailGateway',
    'TemplateRepository',
    'NotificationStore',
    'ActivityLog',
    'ProfileStore',
]
