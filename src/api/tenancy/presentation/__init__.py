"""Tenancy presentation layer: the in-process facade and its models."""

from tenancy.presentation.api import TenancyAPI
from tenancy.presentation.models import OperationFailure

__all__ = ["OperationFailure", "TenancyAPI"]
