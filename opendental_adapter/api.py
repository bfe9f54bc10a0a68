import logging
import os
from contextlib import asynccontextmanager
from datetime import date as date_type, timedelta
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .alternatives import SEARCH_DAYS, AlternativeSlotFinder, parse_time_window
from .booking import BookingOrchestrator, parse_request
from .client import OpenDentalClient
from .exceptions import InvalidDuration, InvalidRequest, SchedulingProviderError
from .models import AppointmentRequest, Booked, SyncStatus
from .provider import SchedulingDataProvider
from .sync import ScheduleSync
from .working_hours import WorkingHoursResolver

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

API_KEY = os.getenv("ADAPTER_API_KEY", "")
SYNC_INTERVAL = float(os.getenv("SYNC_INTERVAL_SECONDS", "300"))
MAX_SLOTS = 20
MAX_SEARCH_DAYS = 31
# HTTPBearer scheme so Swagger-UI can attach the Authorization header globally
auth_scheme = HTTPBearer(auto_error=False)

_client = OpenDentalClient()


async def publish_event(event: dict[str, Any]) -> None:
    # no bus is wired in; the log is the sink
    logger.info("event %s: %s", event["type"], event)


_sync = ScheduleSync(_client, publish_event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if _client.is_enabled() and SYNC_INTERVAL > 0:
        _sync.start(SYNC_INTERVAL)
    else:
        logger.warning("Open Dental credentials not configured, schedule sync disabled")
    yield
    await _sync.stop()


app = FastAPI(title="Open Dental Scheduling Adapter", lifespan=lifespan)


def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)):
    """Validate Bearer token provided via Authorization header"""
    if credentials is None or credentials.scheme.lower() != "bearer" or credentials.credentials != API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_client() -> OpenDentalClient:
    return _client


def get_provider(client: OpenDentalClient = Depends(get_client)) -> SchedulingDataProvider:
    if not client.is_enabled():
        raise HTTPException(status_code=503, detail="Open Dental integration not configured")
    return client


def get_sync() -> ScheduleSync:
    return _sync


def _bad_request(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidRequest):
        return HTTPException(
            status_code=400, detail={"message": "Missing required fields", "missing_fields": exc.missing_fields}
        )
    return HTTPException(status_code=400, detail={"message": str(exc)})


@app.get("/health")
async def health(client: OpenDentalClient = Depends(get_client), sync: ScheduleSync = Depends(get_sync)):
    enabled = client.is_enabled()
    return {
        "enabled": enabled,
        "status": "connected" if enabled else "disabled",
        "last_sync": sync.last_sync,
    }

# Conflict detection and booking -------------------------------------------

@app.post("/appointments/check-conflicts", dependencies=[Depends(verify_api_key)])
async def check_conflicts(
    payload: dict = Body(...),
    max_alternatives: int = Query(5, ge=0, le=MAX_SLOTS),
    provider: SchedulingDataProvider = Depends(get_provider),
):
    """Report conflicts for a proposed slot, with alternatives whenever there are any."""
    try:
        request = parse_request(payload)
        result = await BookingOrchestrator(provider).check(request, max_alternatives)
    except (InvalidRequest, InvalidDuration) as exc:
        raise _bad_request(exc)
    body = result.model_dump(mode="json")
    body["requested_slot"] = request.model_dump(
        mode="json", include={"start_date_time", "duration_minutes", "provider_id", "operatory_id"}
    )
    return body


def _search_days(payload: dict, appointment: AppointmentRequest) -> tuple[date_type, date_type]:
    raw_start = payload.get("start_date", payload.get("startDate"))
    raw_end = payload.get("end_date", payload.get("endDate"))
    try:
        start = date_type.fromisoformat(raw_start) if raw_start else appointment.start_date_time.date()
        end = date_type.fromisoformat(raw_end) if raw_end else start + timedelta(days=SEARCH_DAYS)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail={"message": "start_date and end_date must be YYYY-MM-DD"})
    if end < start or (end - start).days > MAX_SEARCH_DAYS:
        raise HTTPException(
            status_code=400,
            detail={"message": f"end_date must fall within {MAX_SEARCH_DAYS} days after start_date"},
        )
    return start, end


@app.post("/appointments/find-slots", dependencies=[Depends(verify_api_key)])
async def find_slots(payload: dict = Body(...), provider: SchedulingDataProvider = Depends(get_provider)):
    """Open slots for a date range, optionally limited to preferred times of day."""
    try:
        appointment = parse_request(payload.get("appointment") or payload.get("appointmentData") or {})
    except (InvalidRequest, InvalidDuration) as exc:
        raise _bad_request(exc)
    try:
        max_results = min(int(payload.get("max_results", payload.get("maxResults", 5))), MAX_SLOTS)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail={"message": "max_results must be an integer"})
    start, end = _search_days(payload, appointment)
    preferred = payload.get("preferred_times", payload.get("preferredTimes")) or []
    try:
        windows = [parse_time_window(w) for w in preferred]
    except (TypeError, ValueError, AttributeError):
        raise HTTPException(status_code=400, detail={"message": "preferred_times entries must look like HH:MM-HH:MM"})

    slots = await AlternativeSlotFinder(provider).find_alternatives(
        appointment, max_results, start_day=start, end_day=end, preferred_times=windows
    )
    return {
        "available_slots": [s.model_dump(mode="json") for s in slots],
        "search_criteria": {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "duration": appointment.duration_minutes,
            "provider_id": appointment.provider_id,
            "operatory_id": appointment.operatory_id,
            "preferred_times": preferred,
        },
        "total_found": len(slots),
    }


@app.post("/appointments", dependencies=[Depends(verify_api_key)])
async def book_appointment(payload: dict = Body(...), provider: SchedulingDataProvider = Depends(get_provider)):
    """Book an appointment, or return 409 with conflicts and alternatives."""
    try:
        result = await BookingOrchestrator(provider).book(payload)
    except (InvalidRequest, InvalidDuration) as exc:
        raise _bad_request(exc)
    status_code = 201 if isinstance(result, Booked) else 409
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@app.get("/providers/{provider_id}/schedule", dependencies=[Depends(verify_api_key)])
async def provider_schedule(
    provider_id: str,
    date: Optional[date_type] = Query(None, description="YYYY-MM-DD, defaults to today"),
    provider: SchedulingDataProvider = Depends(get_provider),
):
    target = date or date_type.today()
    hours = await WorkingHoursResolver(provider).resolve(provider_id, target)
    return {"provider_id": provider_id, "date": target.isoformat(), "working_hours": hours.model_dump()}

# Sync ---------------------------------------------------------------------

@app.post("/sync/trigger", dependencies=[Depends(verify_api_key)])
async def trigger_sync(
    date: Optional[date_type] = Query(None),
    provider: SchedulingDataProvider = Depends(get_provider),
    sync: ScheduleSync = Depends(get_sync),
):
    try:
        event = await sync.run_once(date)
    except SchedulingProviderError as exc:
        logger.error("Manual sync failed: %s", exc)
        raise HTTPException(status_code=502, detail={"message": "Sync failed", "error": str(exc)})
    return {"success": True, "event": event}


@app.get("/sync/status", dependencies=[Depends(verify_api_key)], response_model=SyncStatus)
async def sync_status(client: OpenDentalClient = Depends(get_client), sync: ScheduleSync = Depends(get_sync)):
    return SyncStatus(
        enabled=client.is_enabled(),
        last_sync=sync.last_sync,
        is_active=sync.is_active,
        conflicts=sync.conflicts,
    )
