"""Azure DevOps route groups, one package per domain.

Each package under ``ado_gateway/domains/<name>/`` maps to the domain token
``name`` with underscores replaced by hyphens (``work_items`` ->
``work-items``) and exposes ``router = APIRouter(...)`` from ``router.py``.
Only packages whose domain is enabled are mounted under ``/api/<version>``.
"""
