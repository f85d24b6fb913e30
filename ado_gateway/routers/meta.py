from fastapi import APIRouter, Request

from .. import schemas
from ..domain_selection import DomainSelection, available_domains

router = APIRouter(tags=["Gateway"])


@router.get("/domains", response_model=schemas.DomainsOut)
def list_domains(request: Request):
    selection: DomainSelection = request.app.state.domain_selection
    return {
        "enabled": list(selection.enabled_domains()),
        "available": list(available_domains()),
        "rejected": list(selection.rejected),
        "mounted": list(getattr(request.app.state, "mounted_domains", ())),
    }
