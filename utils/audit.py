import json
from flask import g, request
from models import db
from models.audit_log import AuditLog

def log_event(action: str, entity=None, entity_id=None, metadata=None, principal=None, tenant_id=None):
    principal = principal or getattr(g, "principal", None)
    ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        tenant_id=tenant_id or (principal.tenant_id if principal else None),
        user_id=principal.user_id if principal else None,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
