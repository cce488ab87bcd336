"""
Dashboard REST API: users, payments, escalation tickets, runtime config,
stats, media uploads and broadcast. Every route requires an admin token.
"""
import logging
import re
import uuid
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from api.deps import get_payments, get_relay, get_settings, get_storage, require_admin
from config.settings import Settings
from services.manager_relay import ManagerRelay
from services.models import FunnelState, PaymentStatus
from services.payment_service import PaymentNotFound, PaymentService, PaymentStatusConflict
from services.storage import Storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin)])

ALLOWED_UPLOAD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".mp4", ".mov", ".webm", ".avi", ".mkv"}
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StatusUpdate(BaseModel):
    status: str


class ReplyBody(BaseModel):
    text: str


class ConfigEntry(BaseModel):
    key: str
    value: str


class BroadcastBody(BaseModel):
    text: str


@router.get("/users")
async def list_users(storage: Storage = Depends(get_storage)) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in await storage.list_sessions()]


@router.get("/payments")
async def list_payments(storage: Storage = Depends(get_storage)) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in await storage.list_payments()]


@router.patch("/payments/{payment_id}/status")
async def update_payment_status(payment_id: str, body: StatusUpdate,
                                payments: PaymentService = Depends(get_payments)):
    try:
        status = PaymentStatus(body.status)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid status")

    try:
        change = await payments.change_status(payment_id, status)
    except PaymentNotFound:
        raise HTTPException(status_code=404, detail="Payment not found")
    except PaymentStatusConflict as e:
        raise HTTPException(status_code=409, detail=str(e))

    return change.payment.to_dict()


@router.get("/messages")
async def list_messages(storage: Storage = Depends(get_storage)) -> List[Dict[str, Any]]:
    result = []
    for ticket in await storage.list_tickets():
        item = ticket.to_dict()
        item["replies"] = [r.to_dict() for r in await storage.list_replies(ticket.id)]
        result.append(item)
    return result


@router.patch("/messages/{ticket_id}/resolve")
async def resolve_message(ticket_id: str, relay: ManagerRelay = Depends(get_relay)):
    ticket = await relay.resolve(ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return {"success": True, "message": ticket.to_dict()}


@router.post("/messages/{ticket_id}/reply")
async def reply_to_message(ticket_id: str, body: ReplyBody, relay: ManagerRelay = Depends(get_relay)):
    text = body.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Reply text required")
    reply = await relay.dashboard_reply(ticket_id, text)
    if reply is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return reply.to_dict()


@router.get("/config")
async def get_config(storage: Storage = Depends(get_storage)) -> Dict[str, str]:
    return await storage.all_config()


@router.post("/config")
async def set_config(entry: ConfigEntry, storage: Storage = Depends(get_storage)):
    key = entry.key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="Key and value required")
    await storage.set_config(key, entry.value)
    logger.info(f"Config updated: {key}")
    return {"success": True}


@router.get("/stats")
async def get_stats(storage: Storage = Depends(get_storage)) -> Dict[str, Any]:
    users = await storage.list_sessions()
    payments = await storage.list_payments()

    step_counts = Counter(u.funnel_state.value for u in users)
    paid = [p for p in payments if p.status == PaymentStatus.PAID]

    return {
        "totalUsers": len(users),
        "stepCounts": {state.value: step_counts.get(state.value, 0) for state in FunnelState},
        "bonusClaimed": sum(1 for u in users if u.bonus_claimed),
        "totalPayments": len(payments),
        "paidCount": len(paid),
        "totalRevenue": sum(p.amount for p in paid),
        "pendingMessages": await storage.count_open_tickets(),
    }


def safe_upload_name(filename: str) -> str:
    """Random prefix + sanitised basename; raises 400 for non-media extensions."""
    name = Path(filename or "").name
    ext = Path(name).suffix.lower()
    if ext not in ALLOWED_UPLOAD_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only image and video files are allowed")
    stem = _UNSAFE_CHARS.sub("_", Path(name).stem).strip("._") or "file"
    return f"{uuid.uuid4().hex[:12]}-{stem[:60]}{ext}"


@router.post("/upload")
async def upload_media(file: UploadFile = File(...), settings: Settings = Depends(get_settings)):
    name = safe_upload_name(file.filename)
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    target = upload_dir / name
    with open(target, "wb") as out:
        while True:
            chunk = await file.read(1024 * 1024)
            if not chunk:
                break
            out.write(chunk)

    logger.info(f"Stored upload {name}")
    return {"url": f"/uploads/{name}"}


@router.post("/broadcast")
async def broadcast(body: BroadcastBody, relay: ManagerRelay = Depends(get_relay)):
    text = body.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Broadcast text required")
    report = await relay.send_broadcast(text)
    return {"sent": report.sent, "failed": report.failed}
