"""Kernel service infrastructure: the flush-only service base and keyed locks."""

from rental_kernel.services.base import BaseService
from rental_kernel.services.lock_registry import KeyedLockRegistry

__all__ = ["BaseService", "KeyedLockRegistry"]
