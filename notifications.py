"""SMS broadcast pipeline for events.

Notifications are queued as ``pending`` records, one per staff member, and
sent later in a single pass that marks each record ``sent`` or ``failed``.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from auth import get_current_user
from database import utcnow
from router import get_event_or_404
from schemas import (
    BulkSmsRequest,
    BulkSmsResponse,
    Event,
    SmsNotification,
    SmsNotificationCreate,
    SmsQueueRequest,
    SmsSendSummary,
)
from sms import SmsSender, get_sms_sender
from storage import Storage, get_storage

logger = structlog.get_logger()

sms_router = APIRouter(dependencies=[Depends(get_current_user)])


def queue_notifications(
    storage: Storage, event: Event, request: SmsQueueRequest
) -> list[SmsNotification]:
    if request.staff_ids:
        known = {member.id for member in storage.get_staff()}
        unknown = [staff_id for staff_id in request.staff_ids if staff_id not in known]
        if unknown:
            raise HTTPException(
                status_code=400,
                detail=f"Unknown staff member(s): {', '.join(str(i) for i in unknown)}",
            )
        # Preserve request order, drop duplicates
        staff_ids = list(dict.fromkeys(request.staff_ids))
    else:
        staff_ids = [member.id for member in storage.get_active_staff()]
        if not staff_ids:
            raise HTTPException(status_code=400, detail="No active staff members to notify")

    return storage.create_sms_notifications(
        SmsNotificationCreate(event_id=event.id, staff_id=staff_id, message=request.message)
        for staff_id in staff_ids
    )


def send_pending_notifications(storage: Storage, event: Event, sender: SmsSender) -> SmsSendSummary:
    notifications = storage.get_sms_notifications(event.id)
    pending = [n for n in notifications if n.status == "pending"]
    logger.info(
        "Sending event SMS",
        event_id=event.id,
        total=len(notifications),
        pending=len(pending),
    )
    if not pending:
        return SmsSendSummary(sent=0, failed=0, message="No pending notifications")

    staff_by_id = {member.id: member for member in storage.get_staff()}
    sent = 0
    failed = 0
    for notification in pending:
        member = staff_by_id.get(notification.staff_id)
        if member is None or not member.phone:
            storage.update_sms_notification(notification.id, {"status": "failed", "sent_at": utcnow()})
            failed += 1
            logger.warning(
                "SMS recipient missing",
                notification_id=notification.id,
                staff_id=notification.staff_id,
            )
            continue

        result = sender.send(member.phone, notification.message)
        if result.success:
            storage.update_sms_notification(notification.id, {"status": "sent", "sent_at": utcnow()})
            sent += 1
        else:
            storage.update_sms_notification(notification.id, {"status": "failed", "sent_at": utcnow()})
            failed += 1
            logger.error(
                "SMS delivery failed",
                notification_id=notification.id,
                phone=member.phone,
                error=result.error,
            )

    logger.info("Event SMS finished", event_id=event.id, sent=sent, failed=failed)
    return SmsSendSummary(
        sent=sent,
        failed=failed,
        message=f"Sent {sent} message(s), {failed} failed",
    )


@sms_router.get("/events/{event_id}/sms", response_model=list[SmsNotification])
async def get_sms_notifications(event_id: int, storage: Storage = Depends(get_storage)):
    get_event_or_404(storage, event_id)
    return storage.get_sms_notifications(event_id)


@sms_router.post(
    "/events/{event_id}/sms",
    response_model=list[SmsNotification],
    status_code=status.HTTP_201_CREATED,
)
async def create_sms_notifications(
    event_id: int, request: SmsQueueRequest, storage: Storage = Depends(get_storage)
):
    event = get_event_or_404(storage, event_id)
    created = queue_notifications(storage, event, request)
    logger.info("SMS notifications queued", event_id=event_id, count=len(created))
    return created


@sms_router.post("/events/{event_id}/sms/send", response_model=SmsSendSummary)
def send_sms_notifications(
    event_id: int,
    storage: Storage = Depends(get_storage),
    sender: SmsSender = Depends(get_sms_sender),
):
    event = get_event_or_404(storage, event_id)
    return send_pending_notifications(storage, event, sender)


@sms_router.post("/notify/sms", response_model=BulkSmsResponse)
def send_bulk_sms(request: BulkSmsRequest, sender: SmsSender = Depends(get_sms_sender)):
    bulk = sender.send_bulk(request.phone_numbers, request.message)
    logger.info("Bulk SMS finished", sent=bulk.sent, failed=bulk.failed)
    return BulkSmsResponse(success=bulk.failed == 0, sent=bulk.sent, failed=bulk.failed)
