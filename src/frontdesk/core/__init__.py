"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from frontdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidStatusTransitionException,
    RepositoryException,
    DuplicateResourceException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "InvalidStatusTransitionException",
    "RepositoryException",
    "DuplicateResourceException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationException",
]
