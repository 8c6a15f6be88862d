# deadswitch/web/routes.py
from __future__ import annotations

import base64
from datetime import timedelta
from typing import Any, List

from fastapi import APIRouter, Depends, Header, Request, Response

from deadswitch.services.checkin_service import CheckInService
from deadswitch.services.switch_service import SwitchService
from deadswitch.web.schemas import (
    PayloadOut,
    RecipientIn,
    RecipientOut,
    ReminderIn,
    ReminderOut,
    SwitchCreate,
    SwitchDetailsOut,
    SwitchOut,
    SwitchUpdate,
)

router = APIRouter()


# ---------- зависимости ----------

def get_switches(request: Request) -> SwitchService:
    return request.app.state.services["switches"]


def get_checkins(request: Request) -> CheckInService:
    return request.app.state.services["checkins"]


def owner_id(x_owner_id: int = Header(...)) -> int:
    """Владельца проставляет слой аутентификации перед нами."""
    return x_owner_id


# ---------- служебное ----------

@router.get("/health")
async def health():
    return {"status": "ok"}


# ---------- свитчи ----------

@router.post("/switches", response_model=SwitchOut, status_code=201)
async def create_switch(
    body: SwitchCreate,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    offsets = None
    if body.reminder_offsets_seconds is not None:
        offsets = [timedelta(seconds=s) for s in body.reminder_offsets_seconds]
    sw = await svc.create_switch(
        owner_id=owner,
        owner_email=body.owner_email,
        timer_duration=timedelta(seconds=body.timer_seconds),
        warning_period=timedelta(seconds=body.warning_seconds),
        trigger_message=body.trigger_message,
        encrypted_payload=body.encrypted_payload,
        payload_key=body.payload_key,
        recipients=[r.model_dump() for r in body.recipients],
        reminder_offsets=offsets,
        enabled=body.enabled,
    )
    return SwitchOut.from_record(sw)


@router.get("/switches", response_model=List[SwitchOut])
async def list_switches(owner: int = Depends(owner_id), svc: SwitchService = Depends(get_switches)):
    return [SwitchOut.from_record(sw) for sw in await svc.list_switches(owner)]


@router.get("/switches/{switch_id}", response_model=SwitchDetailsOut)
async def get_switch(switch_id: int, owner: int = Depends(owner_id), svc: SwitchService = Depends(get_switches)):
    return SwitchDetailsOut.from_details(await svc.get_details(switch_id, owner_id=owner))


@router.patch("/switches/{switch_id}", response_model=SwitchOut)
async def update_switch(
    switch_id: int,
    body: SwitchUpdate,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    # явный null и «поле не прислали» это разные вещи
    sent = body.model_fields_set
    kwargs: dict[str, Any] = {}
    if body.timer_seconds is not None:
        kwargs["timer_duration"] = timedelta(seconds=body.timer_seconds)
    if body.warning_seconds is not None:
        kwargs["warning_period"] = timedelta(seconds=body.warning_seconds)
    if body.is_enabled is not None:
        kwargs["is_enabled"] = body.is_enabled
    for name in ("trigger_message", "encrypted_payload", "payload_key"):
        if name in sent:
            kwargs[name] = getattr(body, name)
    sw = await svc.update_switch(switch_id, owner_id=owner, **kwargs)
    return SwitchOut.from_record(sw)


@router.delete("/switches/{switch_id}", status_code=204)
async def delete_switch(switch_id: int, owner: int = Depends(owner_id), svc: SwitchService = Depends(get_switches)):
    await svc.delete_switch(switch_id, owner_id=owner)
    return Response(status_code=204)


@router.post("/switches/{switch_id}/check-in", response_model=SwitchOut)
async def check_in(switch_id: int, owner: int = Depends(owner_id), svc: CheckInService = Depends(get_checkins)):
    return SwitchOut.from_record(await svc.check_in(switch_id, owner_id=owner))


# ---------- получатели ----------

@router.post("/switches/{switch_id}/recipients", response_model=RecipientOut, status_code=201)
async def add_recipient(
    switch_id: int,
    body: RecipientIn,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    r = await svc.add_recipient(switch_id, owner_id=owner, **body.model_dump())
    return RecipientOut.from_record(r)


@router.delete("/switches/{switch_id}/recipients/{recipient_id}", response_model=SwitchOut)
async def remove_recipient(
    switch_id: int,
    recipient_id: int,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    return SwitchOut.from_record(await svc.remove_recipient(switch_id, recipient_id, owner_id=owner))


# ---------- напоминания ----------

@router.post("/switches/{switch_id}/reminders", response_model=ReminderOut, status_code=201)
async def add_reminder(
    switch_id: int,
    body: ReminderIn,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    r = await svc.add_reminder(switch_id, timedelta(seconds=body.offset_seconds), owner_id=owner)
    return ReminderOut.from_record(r)


@router.delete("/switches/{switch_id}/reminders/{reminder_id}", status_code=204)
async def remove_reminder(
    switch_id: int,
    reminder_id: int,
    owner: int = Depends(owner_id),
    svc: SwitchService = Depends(get_switches),
):
    await svc.remove_reminder(switch_id, reminder_id, owner_id=owner)
    return Response(status_code=204)


# ---------- публичное: для получателей ----------

@router.get("/switches/{switch_id}/payload", response_model=PayloadOut)
async def get_payload(switch_id: int, svc: SwitchService = Depends(get_switches)):
    sw, payload = await svc.get_public_payload(switch_id)
    return PayloadOut(
        switch_id=sw.id,
        encrypted_payload=base64.b64encode(payload).decode("ascii"),
        triggered_at=sw.triggered_at,
    )
