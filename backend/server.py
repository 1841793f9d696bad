"""
Delivery Notification Relay
───────────────────────────
Accepts delivery-lifecycle updates, stores the customer/admin notification
records and pushes the update to live clients:
  • POST /api/notify-user-delivery: persist, then fan out
  • WS   /ws/deliveries: subscribe to order IDs, receive order_update and
    dashboard announcement envelopes
  • GET  /api/health, /api/test, /api/orders/{order_id}/subscribers

Run with:
    uvicorn server:create_app --factory --host 0.0.0.0 --port 3000
"""

from fastapi import FastAPI, APIRouter, Request, WebSocket
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import json
import logging
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import Any, Dict, Optional
from datetime import datetime, timezone

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from config import RelayConfig  # noqa: E402
from notifications import NotificationService  # noqa: E402
from realtime import Broadcaster, ConnectionTransport, SubscriptionRegistry  # noqa: E402
from supabase_client import SupabaseDB  # noqa: E402

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Pydantic Models ─────────────────────────────────────────────────────────

class DeliveryData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    delivery_type: Optional[str] = Field(default=None, alias="deliveryType")


class NotifyDeliveryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    status: Optional[str] = None
    delivery_data: Optional[DeliveryData] = Field(default=None, alias="deliveryData")
    feedback: Optional[str] = None


class SocketCommand(BaseModel):
    action: str
    order_id: Optional[str] = None


# ─── App Factory ─────────────────────────────────────────────────────────────

def create_app(config: Optional[RelayConfig] = None, db: Optional[Any] = None) -> FastAPI:
    config = config or RelayConfig.from_env()
    if db is None:
        db = SupabaseDB(config.supabase_url, config.supabase_key)

    registry = SubscriptionRegistry()
    transport = ConnectionTransport(max_pending=config.outbound_queue_size)
    broadcaster = Broadcaster(registry, transport.deliver_to)
    notifier = NotificationService(db, broadcaster, admin_statuses=config.admin_statuses)

    app = FastAPI(title="Delivery Notification Relay")
    app.state.config = config
    app.state.db = db
    app.state.registry = registry
    app.state.transport = transport
    app.state.broadcaster = broadcaster
    app.state.notifier = notifier

    api_router = APIRouter(prefix="/api")

    # ─── HTTP Endpoints ──────────────────────────────────────────────────────

    @api_router.post("/notify-user-delivery")
    async def notify_user_delivery(request: Request):
        # Parsed by hand so an absent or malformed body gets the 400 below, not a 422
        try:
            body = await request.json()
        except ValueError:
            body = None
        logger.info(f"[Notify] Request received: {body}")

        try:
            req = NotifyDeliveryRequest.model_validate(body if body is not None else {})
        except ValidationError as e:
            logger.info(f"[Notify] Invalid request body: {e.error_count()} error(s)")
            req = None

        if req is None or not req.user_id or not req.status:
            logger.info("[Notify] Missing required fields")
            return JSONResponse(status_code=400, content={"error": "Missing userId or status"})

        delivery_data = req.delivery_data.model_dump(by_alias=True) if req.delivery_data else {}
        try:
            result = await notifier.notify_delivery(
                user_id=req.user_id,
                status=req.status,
                delivery_data=delivery_data,
                feedback=req.feedback,
            )
        except Exception as e:
            logger.error(f"[Notify] Notification endpoint error: {e}", exc_info=True)
            return JSONResponse(status_code=500, content={
                "error": f"Server error: {e}",
                "code": getattr(e, "code", None) or "UNKNOWN",
            })

        return {
            "success": True,
            "message": "Notification sent successfully",
            "userNotificationId": result.user_notification_id,
            "adminNotificationId": result.admin_notification_id,
        }

    @api_router.get("/test")
    async def test_endpoint():
        return {
            "message": "Server is running",
            "timestamp": _now(),
            "storage": db.backend,
        }

    @api_router.get("/health")
    async def health():
        realtime = {
            "connections": broadcaster.connected_count(),
            **(await registry.stats()),
        }
        try:
            await db.ping()
        except Exception as e:
            logger.error(f"[Health] Storage probe failed: {e}")
            return JSONResponse(status_code=500, content={
                "status": "unhealthy",
                "storage": "disconnected",
                "error": str(e),
                "realtime": realtime,
                "timestamp": _now(),
            })
        return {
            "status": "healthy",
            "storage": "connected",
            "backend": db.backend,
            "realtime": realtime,
            "timestamp": _now(),
        }

    @api_router.get("/orders/{order_id}/subscribers")
    async def order_subscribers(order_id: str):
        return {"order_id": order_id, "subscribers": await registry.subscriber_count(order_id)}

    # ─── WebSocket Endpoint ──────────────────────────────────────────────────

    @app.websocket("/ws/deliveries")
    async def ws_deliveries(websocket: WebSocket):
        await websocket.accept()
        handle = transport.open(websocket)
        broadcaster.connection_opened(handle)
        await transport.deliver_to(handle, {"type": "connected", "handle": handle, "timestamp": _now()})
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    reply = {"type": "error", "error": "Binary frames are not supported, send JSON text"}
                else:
                    try:
                        raw = json.loads(text)
                    except ValueError:
                        raw = None
                    reply = await _handle_command(handle, raw)
                await transport.deliver_to(handle, reply)
        except Exception as e:
            logger.warning(f"[WS] {handle} dropped: {e}")
        finally:
            await transport.close(handle)
            await broadcaster.connection_closed(handle)

    async def _handle_command(handle: str, raw: Any) -> Dict[str, Any]:
        try:
            cmd = SocketCommand.model_validate(raw)
        except ValidationError:
            return {"type": "error", "error": "Expected {\"action\": ..., \"order_id\": ...}"}

        if cmd.action == "ping":
            return {"type": "pong", "timestamp": _now()}

        if cmd.action not in ("subscribe", "unsubscribe"):
            return {"type": "error", "error": f"Unknown action: {cmd.action}"}
        if not cmd.order_id:
            return {"type": "error", "error": "order_id is required"}

        if cmd.action == "subscribe":
            await registry.subscribe(cmd.order_id, handle)
        else:
            await registry.unsubscribe(cmd.order_id, handle)
        logger.info(f"[WS] {handle} {cmd.action}d {cmd.order_id}")
        return {
            "type": f"{cmd.action}d",
            "order_id": cmd.order_id,
            "subscribers": await registry.subscriber_count(cmd.order_id),
        }

    @app.on_event("shutdown")
    async def shutdown():
        await transport.close_all()

    # ─── Include Router & Middleware ─────────────────────────────────────────

    app.include_router(api_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    return app


_config = RelayConfig.from_env()
logging.basicConfig(level=_config.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:create_app", factory=True, host="0.0.0.0", port=_config.port)
