"""
FastAPI dependencies: app-scoped services and route guards.

Services live on app.state (set by create_app) so tests can inject an
in-memory repository, a fixed clock and a fresh rate-limit store.
"""
from typing import Optional

from fastapi import Depends, Request

from orgaccess.core.auth import get_optional_actor_id
from orgaccess.features.authorization.guards import Guard, combine_guards, enforce
from orgaccess.features.permissions.checker import AccessContext, PermissionChecker
from orgaccess.features.repository.base import AccessRepository
from orgaccess.features.trials.service import TrialActivationGuard


def get_repository(request: Request) -> AccessRepository:
    return request.app.state.repository


def get_checker(request: Request) -> PermissionChecker:
    return request.app.state.checker


def get_trial_guard(request: Request) -> TrialActivationGuard:
    return request.app.state.trial_guard


def guarded(*guards: Guard):
    """
    Route dependency running `guards` for the path's org_id and the calling
    actor. Raises the first denial as an AppError; yields the AccessContext.
    """
    combined = combine_guards(*guards)

    def dependency(
        org_id: str,
        actor_id: Optional[str] = Depends(get_optional_actor_id),
        checker: PermissionChecker = Depends(get_checker),
    ) -> AccessContext:
        return enforce(checker, actor_id, org_id, combined)

    return dependency
