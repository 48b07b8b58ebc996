from fastapi import FastAPI, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from dtos.chat_request import ChatRequest
from graph import s_graph
from utils import create_sse_stream, create_message_feed, SSE_HEADERS
from contextlib import asynccontextmanager
import os
from typing import List, Optional
from uuid import UUID
import logging

logger = logging.getLogger(__name__)

# Local imports
from database import get_db, engine, SessionLocal
from models import Base, Message, Thread
from schemas import (
    SpaceCreate, SpaceResponse, ThreadCreate, ThreadUpdate, ThreadResponse,
    MessageCreate, MessageResponse, ProfileUpdate, ProfileResponse,
    ReadMarkerResponse, UnreadCountResponse,
    UserCreate, UserResponse, Token, Identity
)
from services import (
    ThreadService, SpaceService, AuthService, MessageService, ProfileService, ReadMarkerService,
    ContextUnavailableError, MessageBroadcaster, ReplyRunner, PersistenceSink
)
from services.context import BACKGROUND_CONTEXT_LIMIT
from services.prompts import split_interpretation
from services.realtime import message_payload
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")


def build_chat_model():
    """Chat model for replies, or None when no provider key is configured."""
    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY is not set; /chat will be unavailable")
        return None

    from langchain.chat_models import init_chat_model
    return init_chat_model(CHAT_MODEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables if they don't exist
    Base.metadata.create_all(bind=engine)

    app.state.graph = s_graph.compile()
    app.state.session_factory = SessionLocal
    app.state.broadcaster = MessageBroadcaster()

    chat_model = build_chat_model()
    app.state.reply_runner = None
    if chat_model is not None:
        sink = PersistenceSink(SessionLocal, broadcaster=app.state.broadcaster)
        app.state.reply_runner = ReplyRunner(chat_model, sink)
        logger.info(f"Reply runner ready with model {CHAT_MODEL}")

    yield

    # let in-flight replies finish so they are still persisted
    if app.state.reply_runner is not None:
        await app.state.reply_runner.drain()


app = FastAPI(
    title="Group Chat Assistant",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
origins = os.getenv("ALLOWED_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins if origins != ["*"] else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600
)


@app.get("/")
async def root():
    return {"message": "Hello World", "status": "running"}

@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "group-chat-assistant"}


@app.get("/health/detailed")
async def detailed_health_check(request: Request, db: Session = Depends(get_db)):
    """Health of the database and the completion provider."""
    health_status = {
        "status": "healthy",
        "service": "group-chat-assistant",
        "checks": {}
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {"status": "healthy"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"

    configured = getattr(request.app.state, "reply_runner", None) is not None
    health_status["checks"]["completion_provider"] = {
        "status": "configured" if configured else "not_configured"
    }
    if not configured:
        health_status["status"] = "degraded"

    return health_status


# OAuth2 configuration
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

# Dependency to resolve the caller from a JWT token
async def get_current_identity(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Identity:
    """Get the current user's id and display name from a JWT token."""
    identity = AuthService.resolve_identity(db, token)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def get_thread_or_404(db: Session, thread_id: UUID) -> Thread:
    thread = ThreadService.get_thread(db, thread_id)
    if not thread:
        raise HTTPException(status_code=404, detail="Thread not found")
    return thread


def message_response(message: Message) -> MessageResponse:
    interpretation, body = None, None
    if message.is_assistant:
        interpretation, body = split_interpretation(message.content)
    return MessageResponse(
        id=message.id,
        thread_id=message.thread_id,
        user_id=message.user_id,
        user_name=message.user_name,
        content=message.content,
        role=message.role,
        created_at=message.created_at,
        interpretation=interpretation,
        body=body
    )


def publish_message(request: Request, message: Message) -> None:
    broadcaster = getattr(request.app.state, "broadcaster", None)
    if broadcaster is not None:
        broadcaster.publish(message.thread_id, message_payload(message))


# Assistant reply stream
@app.post("/chat")
async def chat(
    req: ChatRequest,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Persist the user's message and stream the assistant's reply as SSE."""
    runner: Optional[ReplyRunner] = getattr(request.app.state, "reply_runner", None)
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Completion provider is not configured"
        )

    if req.user_id and req.user_id != identity.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user_id does not match credentials")

    try:
        thread_id = UUID(req.thread_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Thread not found")

    thread = get_thread_or_404(db, thread_id)
    user_name = req.user_name or identity.display_name

    if req.message_id is not None:
        message = MessageService.get_message(db, req.message_id)
        if message is None or message.thread_id != thread.id:
            raise HTTPException(status_code=404, detail="Message not found")
    else:
        try:
            message = MessageService.post_user_message(db, thread, identity.user_id, user_name, req.message)
        except SQLAlchemyError as e:
            logger.error(f"Error saving user message: {e}")
            db.rollback()
            raise HTTPException(status_code=500, detail="Error saving message")
        publish_message(request, message)

    input_data = {
        "thread_id": thread.id,
        "user_id": identity.user_id,
        "user_name": user_name,
        "user_message": req.message,
        "exclude_message_id": message.id,
        "background_limit": req.context_window if req.context_window is not None else BACKGROUND_CONTEXT_LIMIT
    }

    try:
        result = await request.app.state.graph.ainvoke(input_data, config={"configurable": {"db": db}})
    except ContextUnavailableError as e:
        logger.error(f"Cannot build reply context: {e}")
        raise HTTPException(status_code=500, detail="Error fetching messages")

    queue = runner.start(thread.id, result["prompt"])

    return StreamingResponse(
        create_sse_stream(queue),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )


# Space endpoints
@app.post("/spaces", response_model=SpaceResponse, status_code=status.HTTP_201_CREATED)
async def create_space(
    space: SpaceCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> SpaceResponse:
    """Create a new space."""
    db_space = SpaceService.create_space(db, space.name, identity.user_id)
    return SpaceResponse.model_validate(db_space)


@app.get("/spaces", response_model=List[SpaceResponse])
async def list_spaces(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> List[SpaceResponse]:
    """List all spaces, newest first."""
    return [SpaceResponse.model_validate(space) for space in SpaceService.list_spaces(db)]


# Thread management endpoints
@app.post("/threads", response_model=ThreadResponse, status_code=status.HTTP_201_CREATED)
async def create_thread(
    thread: ThreadCreate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ThreadResponse:
    """Create a new conversation thread."""
    if thread.space_id is not None and SpaceService.get_space(db, thread.space_id) is None:
        raise HTTPException(status_code=404, detail="Space not found")

    db_thread = ThreadService.create_thread(db=db, user_id=identity.user_id, thread_data=thread)
    return ThreadResponse.model_validate(db_thread)


@app.get("/threads", response_model=List[ThreadResponse])
async def list_threads(
    space_id: Optional[UUID] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> List[ThreadResponse]:
    """List threads, optionally within one space."""
    threads = ThreadService.list_threads(db=db, space_id=space_id, skip=skip, limit=limit)
    return [ThreadResponse.model_validate(thread) for thread in threads]


@app.get("/threads/{thread_id}", response_model=ThreadResponse)
async def get_thread(
    thread_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ThreadResponse:
    """Get a specific thread by ID."""
    return ThreadResponse.model_validate(get_thread_or_404(db, thread_id))


@app.patch("/threads/{thread_id}", response_model=ThreadResponse)
async def update_thread(
    thread_id: UUID,
    thread_update: ThreadUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ThreadResponse:
    """Rename a thread."""
    thread = get_thread_or_404(db, thread_id)
    return ThreadResponse.model_validate(ThreadService.rename_thread(db, thread, thread_update.title))


# Message endpoints
@app.get("/threads/{thread_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    thread_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> List[MessageResponse]:
    """List a thread's messages, oldest first, and mark it read."""
    thread = get_thread_or_404(db, thread_id)
    messages = MessageService.list_thread_messages(db, thread.id)
    ReadMarkerService.mark_read(db, identity.user_id, thread.id)
    return [message_response(message) for message in messages]


@app.post("/threads/{thread_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    thread_id: UUID,
    message: MessageCreate,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> MessageResponse:
    """Post a user message without asking the assistant."""
    thread = get_thread_or_404(db, thread_id)
    db_message = MessageService.post_user_message(
        db, thread, identity.user_id, identity.display_name, message.content
    )
    publish_message(request, db_message)
    return message_response(db_message)


@app.get("/threads/{thread_id}/events")
async def thread_events(
    thread_id: UUID,
    request: Request,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
):
    """Server-sent events for every message stored in the thread from now on."""
    thread = get_thread_or_404(db, thread_id)
    return StreamingResponse(
        create_message_feed(request.app.state.broadcaster, thread.id),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )


# Read markers
@app.post("/threads/{thread_id}/read", response_model=ReadMarkerResponse)
async def mark_thread_read(
    thread_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ReadMarkerResponse:
    """Record that the caller has read the thread up to now."""
    thread = get_thread_or_404(db, thread_id)
    return ReadMarkerResponse.model_validate(ReadMarkerService.mark_read(db, identity.user_id, thread.id))


@app.get("/threads/{thread_id}/unread", response_model=UnreadCountResponse)
async def unread_count(
    thread_id: UUID,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> UnreadCountResponse:
    """Count messages from others since the caller last read the thread."""
    thread = get_thread_or_404(db, thread_id)
    return UnreadCountResponse(
        thread_id=thread.id,
        unread=ReadMarkerService.unread_count(db, identity.user_id, thread.id)
    )


# Profile endpoints
@app.get("/profile", response_model=ProfileResponse)
async def get_profile(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ProfileResponse:
    """Get the caller's background context."""
    profile = ProfileService.get_profile(db, identity.user_id)
    return ProfileResponse(
        user_id=identity.user_id,
        background_context=profile.background_context if profile else None
    )


@app.put("/profile", response_model=ProfileResponse)
async def update_profile(
    profile_update: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> ProfileResponse:
    """Create or replace the caller's background context."""
    profile = ProfileService.upsert_profile(db, identity.user_id, profile_update.background_context)
    return ProfileResponse(user_id=profile.user_id, background_context=profile.background_context)


# Authentication endpoints
@app.post("/auth/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: UserCreate,
    db: Session = Depends(get_db)
) -> UserResponse:
    """Register a new user."""
    conflict = AuthService.is_taken(db, user_data.email, user_data.username)
    if conflict:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=conflict)

    user = AuthService.create_user(db, user_data)
    return UserResponse.model_validate(user)


@app.post("/auth/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
) -> Token:
    """Login with username/email and password."""
    user = AuthService.authenticate_user(db, form_data.username, form_data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    return Token(
        access_token=AuthService.create_access_token(user.id),
        refresh_token=AuthService.create_refresh_token(user.id)
    )


@app.post("/auth/refresh", response_model=Token)
async def refresh_token(
    refresh_token: str,
    db: Session = Depends(get_db)
) -> Token:
    """Refresh access token using refresh token."""
    identity = AuthService.resolve_identity(db, refresh_token, expected_type="refresh")
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Token(
        access_token=AuthService.create_access_token(identity.user_id),
        refresh_token=AuthService.create_refresh_token(identity.user_id)
    )


@app.get("/auth/me", response_model=Identity)
async def get_current_user_info(
    identity: Identity = Depends(get_current_identity)
) -> Identity:
    """Get the caller's resolved identity."""
    return identity
