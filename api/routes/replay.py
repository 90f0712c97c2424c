"""Replay endpoints.

The WebSocket drives server-side replay clocks and streams the revealed
chart data to the browser at the replay frame interval.

Route: ws://host:port/api/ws/replay
"""

import asyncio
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from config import SPEED_OPTIONS, DEFAULT_SPEED, REPLAY_FRAME_INTERVAL, STAGE_COLORS, STAGE_BORDER_COLORS, CHART_COLORS
from logging_config import get_logger
from services.replay_service import AsyncioFrameScheduler, ShotReplaySession, ComparisonReplaySession
from api.routes.shots import ShotChartRequest, ShotCompareRequest, target_curves_to_dicts, summary_to_dict

router = APIRouter()
logger = get_logger()

# Sessions of currently connected clients, closed on shutdown
_active_sessions: set = set()

CLOCK_ACTIONS = ("play", "pause", "toggle", "restart", "seek", "speed")


def close_all_sessions() -> int:
    """Cancel every pending replay frame. Returns the number of sessions closed."""
    count = len(_active_sessions)
    for session in list(_active_sessions):
        session.close()
    _active_sessions.clear()
    return count


@router.get("/api/replay/options")
async def get_replay_options():
    """Playback speeds, frame rate and palettes for replay controls."""
    return {
        "speed_options": SPEED_OPTIONS,
        "default_speed": DEFAULT_SPEED,
        "frame_interval": REPLAY_FRAME_INTERVAL,
        "stage_colors": STAGE_COLORS,
        "stage_border_colors": STAGE_BORDER_COLORS,
        "chart_colors": CHART_COLORS,
    }


def handle_replay_message(message: dict, sessions: dict):
    """Apply one client message to the replay sessions.

    Returns the session that changed. Raises ValueError for malformed
    messages; the caller reports those back to the client.
    """
    if not isinstance(message, dict):
        raise ValueError("Replay messages must be JSON objects")

    action = message.get("action")

    if action == "load":
        body = ShotChartRequest.model_validate(message)
        session = sessions["shot"]
        session.select(
            body.shot_data,
            target_curves=target_curves_to_dicts(body.target_curves),
            profile=body.profile,
        )
        return session

    if action == "compare":
        body = ShotCompareRequest.model_validate(message)
        session = sessions["comparison"]
        session.select(
            body.shot_a,
            body.shot_b,
            summary_to_dict(body.summary_a),
            summary_to_dict(body.summary_b),
        )
        return session

    if action not in CLOCK_ACTIONS:
        raise ValueError(f"Unknown replay action: {action!r}")

    target = message.get("target", "shot")
    session = sessions.get(target) if isinstance(target, str) else None
    if session is None:
        raise ValueError(f"Unknown replay target: {target!r}")

    clock = session.clock
    if action == "seek":
        fraction = message.get("fraction")
        if fraction is None:
            raise ValueError("seek requires a fraction")
        clock.seek(fraction)
    elif action == "speed":
        clock.set_speed(message.get("multiplier"))
    else:
        getattr(clock, action)()
    return session


@router.websocket("/api/ws/replay")
async def replay_stream(ws: WebSocket):
    """Stream shot replays over WebSocket.

    Protocol (client -> server):
      {"action": "load", "shot_data": ..., "target_curves"?: [...], "profile"?: {...}}
      {"action": "compare", "shot_a": ..., "shot_b"?: ..., "summary_a"?: {...}, "summary_b"?: {...}}
      {"action": "play" | "pause" | "toggle" | "restart", "target"?: "shot" | "comparison"}
      {"action": "seek", "fraction": 0.5, "target"?: ...}
      {"action": "speed", "multiplier": 2, "target"?: ...}

    Protocol (server -> client):
      {"type": "view", ...}   after every accepted message
      {"type": "frame", ...}  on every clock frame while playing
      {"type": "error", "message": ...}
    """
    await ws.accept()

    outbox: asyncio.Queue = asyncio.Queue()
    scheduler = AsyncioFrameScheduler()

    def push_frame(session):
        outbox.put_nowait({"type": "frame", **session.view()})

    sessions = {
        "shot": ShotReplaySession(scheduler, on_frame=push_frame),
        "comparison": ComparisonReplaySession(scheduler, on_frame=push_frame),
    }
    _active_sessions.update(sessions.values())

    async def sender():
        while True:
            await ws.send_json(await outbox.get())

    sender_task = asyncio.create_task(sender())
    ws_id = id(ws)
    logger.info("Replay client connected", extra={"ws_id": ws_id})

    try:
        while True:
            message = await ws.receive_json()
            try:
                session = handle_replay_message(message, sessions)
            except (ValueError, TypeError) as e:
                logger.debug("Rejected replay message", extra={"ws_id": ws_id, "error": str(e)})
                outbox.put_nowait({"type": "error", "message": str(e)})
                continue
            outbox.put_nowait({"type": "view", **session.view()})

    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.warning("Replay WebSocket error: %s", exc, extra={"ws_id": ws_id})
    finally:
        for session in sessions.values():
            session.close()
            _active_sessions.discard(session)
        sender_task.cancel()
        await asyncio.gather(sender_task, return_exceptions=True)
        logger.info("Replay client disconnected", extra={"ws_id": ws_id})
