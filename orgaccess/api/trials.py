"""
Trial activation API.

- POST /v1/orgs/{org_id}/trial: start a self-service trial

Errors:
    401: No actor
    403: Caller is not a member of the organization
    409: ACTIVE_SUBSCRIPTION or TRIAL_ALREADY_ACTIVE (see error.code)
    429: Too many attempts (Retry-After header set)
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from orgaccess.api.deps import get_trial_guard, guarded
from orgaccess.features.authorization.guards import require_role
from orgaccess.features.permissions.checker import AccessContext
from orgaccess.features.trials.service import TrialActivationGuard
from orgaccess.models.membership import Role
from orgaccess.models.trial import TrialActivation


router = APIRouter(prefix="/v1/orgs", tags=["trials"])


class TrialRequest(BaseModel):
    vertical: Optional[str] = None


@router.post("/{org_id}/trial", response_model=TrialActivation)
def activate_trial(
    org_id: str,
    body: Optional[TrialRequest] = None,
    ctx: AccessContext = Depends(guarded(require_role(*Role))),
    trial_guard: TrialActivationGuard = Depends(get_trial_guard),
):
    vertical = body.vertical if body else None
    return trial_guard.activate(ctx.actor_id, org_id, vertical=vertical)
