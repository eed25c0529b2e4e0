import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth_utils import normalize_email, verify_token
from .config import Settings, settings as default_settings
from .deps import Community, Finance, Missions, Users
from .persistence import KVStore, get_kv_store
from .schemas import (
    FriendAddRequest,
    HealthResponse,
    LoginRequest,
    MissionCompleteRequest,
    MissionsSaveRequest,
    PostCreate,
    SignupRequest,
    TransactionCreate,
    UserProfileUpdate,
)
from .services.accounts import UserService
from .services.community import CommunityService
from .services.finance import FinanceService
from .services.gemini import GeminiClient, TextGenerator
from .services.missions import MissionService
from .store import InMemoryStore

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_user(authorization: str | None) -> str:
    token: str | None = None
    if authorization:
        parts = authorization.split(" ", 1)
        if len(parts) == 2:
            if parts[0].lower() != "bearer":
                raise HTTPException(status_code=401, detail="Unauthorized - invalid or expired token")
            token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="No authorization token provided")
    email = verify_token(token)
    if email is None:
        raise HTTPException(status_code=401, detail="Unauthorized - invalid or expired token")
    return normalize_email(email)


def _validation_message(exc: RequestValidationError) -> str:
    messages: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item != "body")
        msg = str(err.get("msg", "validation error")).removeprefix("Value error, ")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages) or "Invalid request payload"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=InMemoryStore.now_iso())


@router.post("/signup")
async def signup(payload: SignupRequest, users: Users) -> dict[str, Any]:
    user, token = users.signup(payload)
    return {"success": True, "userId": user.email, "accessToken": token, "message": "Account created successfully"}


@router.post("/login")
async def login(payload: LoginRequest, users: Users) -> dict[str, Any]:
    user, token = users.login(payload)
    logger.info("Login successful for %s", user.email)
    return {"success": True, "accessToken": token, "userId": user.email, "userData": user.public()}


@router.get("/profile")
async def get_profile(users: Users, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    user = users.get_user(email)
    return {"success": True, "userId": email, "email": email, "userData": user.public() if user else {}}


@router.post("/update-profile")
async def update_profile(
    payload: UserProfileUpdate,
    users: Users,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    user = users.update_profile(email, payload)
    return {"success": True, "message": "Profile updated successfully", "userData": user.public()}


@router.get("/missions")
async def get_missions(missions: Missions, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    state = missions.get_state(email)
    return {"success": True, "data": state.to_json()}


@router.post("/missions")
async def save_missions(
    payload: MissionsSaveRequest,
    missions: Missions,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    state = missions.save_missions(email, payload.missions)
    return {
        "success": True,
        "message": "Missions saved successfully",
        "data": state.to_json(),
    }


@router.post("/missions/complete")
async def complete_mission(
    payload: MissionCompleteRequest,
    missions: Missions,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    new_xp = missions.complete(email, payload.missionId, payload.xpEarned)
    return {
        "success": True,
        "message": "Mission completed successfully",
        "xpEarned": payload.xpEarned,
        "newXP": new_xp,
    }


@router.post("/missions/generate")
async def generate_missions(missions: Missions, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    generated = await missions.generate(email)
    return {"success": True, "missions": [m.model_dump(mode="json", exclude_unset=True) for m in generated]}


@router.get("/transactions")
async def list_transactions(finance: Finance, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    return {"success": True, "transactions": finance.list_transactions(email)}


@router.post("/transactions")
async def add_transaction(
    payload: TransactionCreate,
    finance: Finance,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    result = finance.add_transaction(email, payload)
    return {"success": True, **result.model_dump(mode="json")}


@router.get("/financial-data")
async def get_financial_data(finance: Finance, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    return {"success": True, "data": finance.get_financial_data(email)}


@router.post("/financial-data")
async def save_financial_data(
    payload: dict[str, Any],
    finance: Finance,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    snapshot = finance.save_financial_data(email, payload)
    return {"success": True, "message": "Financial data saved successfully", "data": snapshot}


@router.get("/community/posts")
async def list_posts(community: Community, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    _require_user(authorization)
    posts = community.list_posts()
    return {"success": True, "posts": [p.model_dump(exclude_none=True) for p in posts]}


@router.post("/community/posts")
async def create_post(
    payload: PostCreate,
    community: Community,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    post = community.create_post(email, payload)
    return {"success": True, "message": "Post created successfully", "post": post.model_dump(exclude_none=True)}


@router.get("/leaderboard")
async def leaderboard(users: Users, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    return {"success": True, "leaderboard": [entry.model_dump() for entry in users.leaderboard(email)]}


@router.post("/friends/add")
async def add_friend(
    payload: FriendAddRequest,
    users: Users,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    friend = users.add_friend(email, payload.friendEmail)
    return {"success": True, "message": "Friend added successfully", "friend": friend.model_dump(exclude_none=True)}


@router.get("/friends")
async def list_friends(users: Users, authorization: str | None = Header(default=None)) -> dict[str, Any]:
    email = _require_user(authorization)
    return {"success": True, "friends": [f.model_dump(exclude_none=True) for f in users.list_friends(email)]}


@router.get("/users/search")
async def search_users(
    users: Users,
    q: str = Query(default=""),
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    email = _require_user(authorization)
    return {"success": True, "users": [u.model_dump() for u in users.search(email, q)]}


def create_app(
    settings: Settings | None = None,
    kv_store: KVStore | None = None,
    ai_client: TextGenerator | None = None,
) -> FastAPI:
    """Build the API with its own store and services.

    ``kv_store`` and ``ai_client`` override what ``settings`` would select.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    kv = kv_store or get_kv_store(settings)
    if ai_client is None and settings.gemini_api_key:
        ai_client = GeminiClient(settings.gemini_api_key, settings.gemini_api_url, settings.gemini_timeout_seconds)

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        yield
        close = getattr(fastapi_app.state.ai_client, "close", None)
        if close is not None:
            try:
                await close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Error closing AI client: %s", exc)

    app = FastAPI(
        title="Solo Levelling API",
        version="0.1.0",
        description="Gamified personal-finance backend: profiles, missions, transactions and community.",
        lifespan=lifespan,
    )

    users = UserService(kv)
    app.state.settings = settings
    app.state.kv_store = kv
    app.state.ai_client = ai_client
    app.state.user_service = users
    app.state.mission_service = MissionService(kv, users, ai_client)
    app.state.finance_service = FinanceService(kv, users)
    app.state.community_service = CommunityService(kv, users)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.middleware("http")
    async def unhandled_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={"error": f"Server error on {request.method} {request.url.path}: {exc}"},
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=600,
    )
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
