"""HTTP server exposing the chat operations."""

import json
import math
from collections.abc import Awaitable, Callable
from typing import Any

import pydantic
import structlog
from aiohttp import web

from pulsechat.application.services import ChatServices
from pulsechat.application.views import Attachment
from pulsechat.config.models import AppConfig
from pulsechat.domain.entities import User
from pulsechat.domain.entities.event import PRESENCE_KEY, USERS_KEY
from pulsechat.domain.errors import (
    ChatError,
    ForbiddenError,
    NotFoundError,
    NotMemberError,
    ProfileNotFoundError,
    UnauthenticatedError,
    UploadError,
    ValidationError,
)
from pulsechat.domain.identity import Identity
from pulsechat.domain.ids import new_id
from pulsechat.infrastructure.change_feed import ChangeFeed
from pulsechat.infrastructure.logging import bind_request_context

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ERROR_STATUS: dict[type[ChatError], int] = {
    UnauthenticatedError: 401,
    ProfileNotFoundError: 409,
    ValidationError: 400,
    NotMemberError: 403,
    ForbiddenError: 403,
    NotFoundError: 404,
}

UPLOAD_ERROR_STATUS: dict[str, int] = {
    "invalid_handle": 400,
    "too_large": 413,
    "storage": 502,
}

PUBLIC_WATCH_KEYS = frozenset({PRESENCE_KEY, USERS_KEY})
CONVERSATION_SCOPES = frozenset({"messages", "reactions", "typing"})

# Headroom over max_upload_bytes so oversize uploads reach the storage check
# and get a structured error instead of aiohttp's plain 413.
BODY_SIZE_HEADROOM = 64 * 1024


def _dump(value: Any) -> Any:
    """Convert read models (and containers of them) into JSON-ready data."""
    if isinstance(value, pydantic.BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


class HTTPServer:
    """HTTP server for the chat API.

    The caller's identity is taken from the configured subject header, which
    a trusted gateway sets after verifying the identity provider's token.
    Write endpoints resolve the caller strictly; read endpoints that may race
    with onboarding resolve it optionally and return empty results.

    Args:
        config: Application configuration.
        services: Application services.
        change_feed: Change feed backing the watch endpoint.
        logger: Structured logger for logging.
    """

    def __init__(
        self,
        config: AppConfig,
        services: ChatServices,
        change_feed: ChangeFeed,
        logger: structlog.BoundLogger,
    ) -> None:
        self.config = config
        self._services = services
        self._change_feed = change_feed
        self._logger = logger
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def is_running(self) -> bool:
        """Return True if the server is running."""
        return self._site is not None

    @property
    def actual_port(self) -> int:
        """Return the actual port the server is listening on.

        This is useful when port 0 is configured to get a random port.

        Raises:
            RuntimeError: If the server is not running.
        """
        if self._site is None:
            raise RuntimeError("Server is not running")
        server = getattr(self._site, "_server", None)
        if server is None:
            raise RuntimeError("Server is not running")
        sockets = getattr(server, "sockets", None)
        if sockets:
            return sockets[0].getsockname()[1]
        raise RuntimeError("No sockets available")

    def create_app(self) -> web.Application:
        """Create and return the aiohttp Application.

        This method is exposed for testing purposes.

        Returns:
            Configured aiohttp Application.
        """
        app = web.Application(
            middlewares=[self._error_middleware],
            client_max_size=self.config.storage.max_upload_bytes + BODY_SIZE_HEADROOM,
        )
        router = app.router
        router.add_get("/healthz", self._handle_health_check)

        router.add_post("/api/v1/profile", self._handle_upsert_profile)
        router.add_get("/api/v1/me", self._handle_current_user)
        router.add_get("/api/v1/users", self._handle_list_users)
        router.add_get("/api/v1/users/{user_id}", self._handle_get_user)

        router.add_get("/api/v1/conversations", self._handle_list_conversations)
        router.add_post("/api/v1/conversations/direct", self._handle_direct)
        router.add_post("/api/v1/conversations/groups", self._handle_create_group)
        router.add_get(
            "/api/v1/conversations/{conversation_id}", self._handle_get_conversation
        )
        router.add_post(
            "/api/v1/conversations/{conversation_id}/read", self._handle_mark_as_read
        )
        router.add_get(
            "/api/v1/conversations/{conversation_id}/messages",
            self._handle_list_messages,
        )
        router.add_post(
            "/api/v1/conversations/{conversation_id}/messages",
            self._handle_send_message,
        )
        router.add_get(
            "/api/v1/conversations/{conversation_id}/reactions",
            self._handle_conversation_reactions,
        )
        router.add_get(
            "/api/v1/conversations/{conversation_id}/typing",
            self._handle_get_typing,
        )
        router.add_post(
            "/api/v1/conversations/{conversation_id}/typing",
            self._handle_set_typing,
        )
        router.add_delete(
            "/api/v1/conversations/{conversation_id}/typing",
            self._handle_clear_typing,
        )

        router.add_delete("/api/v1/messages/{message_id}", self._handle_delete_message)
        router.add_get(
            "/api/v1/messages/{message_id}/reactions", self._handle_get_reactions
        )
        router.add_post(
            "/api/v1/messages/{message_id}/reactions", self._handle_toggle_reaction
        )

        router.add_get("/api/v1/presence", self._handle_presence_map)
        router.add_post("/api/v1/presence/online", self._handle_set_online)
        router.add_post("/api/v1/presence/offline", self._handle_set_offline)
        router.add_post("/api/v1/presence/heartbeat", self._handle_heartbeat)

        router.add_post("/api/v1/uploads", self._handle_request_upload)
        router.add_put("/api/v1/uploads/{handle}", self._handle_upload)
        router.add_get("/api/v1/files/{handle}", self._handle_get_file)
        router.add_get("/api/v1/files/{handle}/url", self._handle_file_url)

        router.add_post("/api/v1/watch", self._handle_watch)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(
            self._runner, self.config.server.host, self.config.server.port
        )
        await self._site.start()
        self._logger.info(
            "HTTP server started",
            host=self.config.server.host,
            port=self.actual_port,
        )

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            self._app = None
            self._logger.info("HTTP server stopped")

    @web.middleware
    async def _error_middleware(
        self, request: web.Request, handler: Handler
    ) -> web.StreamResponse:
        """Map chat errors to JSON error responses."""
        bind_request_context(request_id=new_id(), path=request.path)
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except UploadError as e:
            self._logger.warning("Upload failed", reason=e.reason, error=e.message)
            return web.json_response(
                {
                    "error": e.message,
                    "code": e.code,
                    "kind": "upload",
                    "reason": e.reason,
                },
                status=UPLOAD_ERROR_STATUS.get(e.reason, 502),
            )
        except ChatError as e:
            status = ERROR_STATUS.get(type(e), 400)
            self._logger.warning(
                "Request rejected", code=e.code, status=status, error=e.message
            )
            return web.json_response(
                {"error": e.message, "code": e.code}, status=status
            )
        except Exception as e:
            self._logger.error("Unhandled error", error=str(e), exc_info=True)
            return web.json_response(
                {"error": "Internal server error", "code": "internal"}, status=500
            )

    # --- request helpers -------------------------------------------------

    def _identity(self, request: web.Request) -> Identity | None:
        subject = request.headers.get(self.config.auth.subject_header, "").strip()
        if not subject:
            return None
        return Identity(subject=subject)

    async def _caller(self, request: web.Request) -> User:
        return await self._services.identity.resolve_required(self._identity(request))

    async def _optional_caller(self, request: web.Request) -> User | None:
        return await self._services.identity.resolve_optional(self._identity(request))

    async def _read_json(self, request: web.Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Invalid JSON") from None
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return body

    @staticmethod
    def _require(body: dict[str, Any], field: str, kind: type = str) -> Any:
        if field not in body:
            raise ValidationError(f"Missing required field: {field}")
        value = body[field]
        if not isinstance(value, kind):
            raise ValidationError(f"Invalid field: {field}")
        return value

    @staticmethod
    def _ok() -> web.Response:
        return web.json_response({"status": "ok"})

    # --- health ----------------------------------------------------------

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        """Handle GET /healthz requests."""
        return web.json_response({"status": "ok"})

    # --- users -----------------------------------------------------------

    async def _handle_upsert_profile(self, request: web.Request) -> web.Response:
        identity = self._identity(request)
        if identity is None:
            raise UnauthenticatedError("Unauthenticated")
        body = await self._read_json(request)
        external_id = body.get("external_id")
        if external_id is None:
            external_id = identity.subject
        if not isinstance(external_id, str):
            raise ValidationError("Invalid field: external_id")

        user_id = await self._services.identity.upsert_profile(
            identity,
            external_id=external_id,
            name=self._require(body, "name"),
            email=body.get("email") or "",
            avatar_url=body.get("avatar_url") or "",
        )
        return web.json_response({"user_id": user_id})

    async def _handle_current_user(self, request: web.Request) -> web.Response:
        user = await self._services.identity.get_current_user(self._identity(request))
        return web.json_response(_dump(user))

    async def _handle_list_users(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        users = await self._services.identity.list_other_users(
            caller, search=request.query.get("q")
        )
        return web.json_response(_dump(users))

    async def _handle_get_user(self, request: web.Request) -> web.Response:
        user = await self._services.identity.get_user(request.match_info["user_id"])
        if user is None:
            raise NotFoundError("User not found")
        return web.json_response(_dump(user))

    # --- conversations ---------------------------------------------------

    async def _handle_list_conversations(self, request: web.Request) -> web.Response:
        caller = await self._optional_caller(request)
        conversations = await self._services.conversations.list_my_conversations(caller)
        return web.json_response(_dump(conversations))

    async def _handle_direct(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        body = await self._read_json(request)
        conversation_id = await self._services.conversations.get_or_create_direct(
            caller, self._require(body, "other_user_id")
        )
        return web.json_response({"conversation_id": conversation_id})

    async def _handle_create_group(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        body = await self._read_json(request)
        member_ids = self._require(body, "member_ids", list)
        if not all(isinstance(member_id, str) for member_id in member_ids):
            raise ValidationError("Invalid field: member_ids")
        conversation_id = await self._services.conversations.create_group(
            caller, self._require(body, "name"), member_ids
        )
        return web.json_response({"conversation_id": conversation_id})

    async def _handle_get_conversation(self, request: web.Request) -> web.Response:
        caller = await self._optional_caller(request)
        conversation = await self._services.conversations.get_conversation(
            caller, request.match_info["conversation_id"]
        )
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return web.json_response(_dump(conversation))

    async def _handle_mark_as_read(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        await self._services.conversations.mark_as_read(
            caller, request.match_info["conversation_id"]
        )
        return self._ok()

    # --- messages --------------------------------------------------------

    async def _handle_list_messages(self, request: web.Request) -> web.Response:
        caller = await self._optional_caller(request)
        messages = await self._services.messages.list_messages(
            caller, request.match_info["conversation_id"]
        )
        return web.json_response(_dump(messages))

    async def _handle_send_message(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        body = await self._read_json(request)

        content = body.get("content")
        if content is not None and not isinstance(content, str):
            raise ValidationError("Invalid field: content")

        attachment = None
        if body.get("attachment") is not None:
            try:
                attachment = Attachment.model_validate(body["attachment"])
            except pydantic.ValidationError:
                raise ValidationError("Invalid field: attachment") from None

        message_id = await self._services.messages.send(
            caller, request.match_info["conversation_id"], content, attachment
        )
        return web.json_response({"message_id": message_id})

    async def _handle_delete_message(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        await self._services.messages.soft_delete(
            caller, request.match_info["message_id"]
        )
        return self._ok()

    # --- reactions -------------------------------------------------------

    async def _handle_toggle_reaction(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        body = await self._read_json(request)
        reacted = await self._services.reactions.toggle(
            caller, request.match_info["message_id"], self._require(body, "emoji")
        )
        return web.json_response({"reacted": reacted})

    async def _handle_get_reactions(self, request: web.Request) -> web.Response:
        caller = await self._optional_caller(request)
        reactions = await self._services.reactions.get_reactions(
            request.match_info["message_id"], caller
        )
        return web.json_response(_dump(reactions))

    async def _handle_conversation_reactions(
        self, request: web.Request
    ) -> web.Response:
        caller = await self._optional_caller(request)
        reactions = await self._services.reactions.get_reactions_for_conversation(
            request.match_info["conversation_id"], caller
        )
        return web.json_response(_dump(reactions))

    # --- presence --------------------------------------------------------

    async def _handle_presence_map(self, request: web.Request) -> web.Response:
        presence = await self._services.presence.get_presence_map()
        return web.json_response(presence)

    async def _handle_set_online(self, request: web.Request) -> web.Response:
        await self._services.presence.set_online(await self._caller(request))
        return self._ok()

    async def _handle_set_offline(self, request: web.Request) -> web.Response:
        await self._services.presence.set_offline(await self._caller(request))
        return self._ok()

    async def _handle_heartbeat(self, request: web.Request) -> web.Response:
        await self._services.presence.heartbeat(await self._caller(request))
        return self._ok()

    # --- typing ----------------------------------------------------------

    async def _handle_set_typing(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        await self._services.typing.set_typing(
            caller, request.match_info["conversation_id"]
        )
        return self._ok()

    async def _handle_clear_typing(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        await self._services.typing.clear_typing(
            caller, request.match_info["conversation_id"]
        )
        return self._ok()

    async def _handle_get_typing(self, request: web.Request) -> web.Response:
        caller = await self._optional_caller(request)
        users = await self._services.typing.get_typing_users(
            caller, request.match_info["conversation_id"]
        )
        return web.json_response(_dump(users))

    # --- uploads ---------------------------------------------------------

    async def _handle_request_upload(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        target = await self._services.uploads.request_upload_target(caller)
        return web.json_response(_dump(target))

    async def _handle_upload(self, request: web.Request) -> web.Response:
        caller = await self._caller(request)
        handle = request.match_info["handle"]
        data = await request.read()
        await self._services.uploads.store(caller, handle, data, request.content_type)
        url = await self._services.uploads.resolve_file_url(handle)
        return web.json_response({"handle": handle, "url": url})

    async def _handle_get_file(self, request: web.Request) -> web.Response:
        stored = await self._services.uploads.open_file(request.match_info["handle"])
        if stored is None:
            raise NotFoundError("File not found")
        return web.Response(
            body=stored.data, headers={"Content-Type": stored.content_type}
        )

    async def _handle_file_url(self, request: web.Request) -> web.Response:
        url = await self._services.uploads.resolve_file_url(
            request.match_info["handle"]
        )
        return web.json_response({"url": url})

    # --- change feed -----------------------------------------------------

    async def _handle_watch(self, request: web.Request) -> web.Response:
        """Handle POST /api/v1/watch long-poll requests.

        Body: {"keys": [...], "timeout": seconds}. Responds as soon as one of
        the keys is invalidated, or with an empty list when the wait (capped
        by watch.max_wait_seconds) runs out.
        """
        body = await self._read_json(request)
        keys = self._require(body, "keys", list)
        if not keys or not all(isinstance(key, str) for key in keys):
            raise ValidationError("Invalid field: keys")

        max_wait = self.config.watch.max_wait_seconds
        timeout = body.get("timeout", max_wait)
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, (int, float))
            or not math.isfinite(timeout)
            or timeout < 0
        ):
            raise ValidationError("Invalid field: timeout")

        await self._authorize_watch(request, keys)

        with self._change_feed.watch(keys) as subscription:
            invalidated = await subscription.wait(timeout=min(timeout, max_wait))
        return web.json_response({"invalidated": sorted(invalidated)})

    async def _authorize_watch(self, request: web.Request, keys: list[str]) -> None:
        """Reject keys whose results the caller could not read.

        Public keys need no caller. A conversation list key must be the
        caller's own; conversation-scoped keys need a membership.

        Raises:
            UnauthenticatedError: If a private key is watched without identity.
            ForbiddenError: If the caller may not read one of the keys.
        """
        private_keys = [key for key in keys if key not in PUBLIC_WATCH_KEYS]
        if not private_keys:
            return

        caller = await self._caller(request)
        for key in private_keys:
            scope, _, target = key.partition(":")
            if scope == "conversations" and target == caller.id:
                continue
            if (
                scope in CONVERSATION_SCOPES
                and await self._services.conversations.is_member(caller, target)
            ):
                continue
            raise ForbiddenError(f"Cannot watch key: {key}")
