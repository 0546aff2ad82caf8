import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from capsule_api.dependencies import (
    Services,
    current_user,
    get_services,
    optional_user,
    read_payload,
    wants_json,
)
from capsule_api.domain.exceptions import AuthError, NotFoundError, StoreError
from capsule_api.domain.schemas import (
    AddPageOut,
    CommentCreatedOut,
    CommentIn,
    CommentOut,
    LoginIn,
    LoginPageOut,
    NoteCreatedOut,
    NoteCreateIn,
    NoteDeleteIn,
    NoteListOut,
    NoteOut,
)
from capsule_api.identity import USER_PREFIX
from capsule_api.indexing.search import SearchCriteria, free_text_filter, run_search
from capsule_api.indexing.tags import tag_suggestions
from capsule_api.notes import NOTE_PREFIX, NoteFields
from capsule_api.sessions import SESSION_COOKIE

router = APIRouter()
debug_router = APIRouter()
logger = logging.getLogger("capsule.api")


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _rid(request: Request) -> str:
    return getattr(request.state, "request_id", "")


async def _listing(services: Services, page: str, user: Optional[str], q: Optional[str]) -> NoteListOut:
    notes = await services.notes.get_all()
    shown = free_text_filter(notes, q)
    return NoteListOut(
        page=page,
        notes=[NoteOut.from_entity(n) for n in shown],
        tags=tag_suggestions(notes),
        search=q or "",
        user=user,
    )


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/", response_model=NoteListOut)
@router.get("/home", response_model=NoteListOut)
async def home(
    q: Optional[str] = None,
    user: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return await _listing(services, "home", user, q)


@router.get("/notes", response_model=NoteListOut)
async def list_notes(
    q: Optional[str] = None,
    user: Optional[str] = Depends(optional_user),
    services: Services = Depends(get_services),
):
    # Public unless NOTES_PUBLIC=false; "/" and "/home" always require a session.
    if not services.settings.notes_public and not user:
        raise AuthError("Login required", code="login_required")
    return await _listing(services, "notes", user, q)


@router.get("/add", response_model=AddPageOut)
async def add_page(user: str = Depends(current_user), services: Services = Depends(get_services)):
    notes = await services.notes.get_all()
    return AddPageOut(tags=tag_suggestions(notes), user=user)


@router.get("/login", response_model=LoginPageOut)
def login_page():
    return LoginPageOut()


@router.post("/login")
async def login(request: Request, services: Services = Depends(get_services)):
    payload = await read_payload(request, LoginIn)
    email = payload.email.strip()
    try:
        valid = await services.identity.verify(email, payload.password)
    except StoreError:
        logger.exception("login_error", extra={"rid": _rid(request)})
        return JSONResponse(status_code=503, content=LoginPageOut(error="Login error occurred").model_dump())

    if not valid:
        logger.info("login_failed", extra={"rid": _rid(request)})
        return JSONResponse(status_code=401, content=LoginPageOut(error="Invalid credentials").model_dump())

    cookie = services.gate.login(email)
    response = JSONResponse({"ok": True, "user": email}) if wants_json(request) else _redirect("/")
    response.set_cookie(
        SESSION_COOKIE,
        cookie,
        max_age=services.settings.session_ttl_s,
        httponly=True,
        samesite="lax",
        secure=services.settings.session_cookie_secure,
    )
    return response


@router.post("/logout")
def logout(request: Request, services: Services = Depends(get_services)):
    services.gate.logout(request.cookies.get(SESSION_COOKIE))
    response = JSONResponse({"ok": True}) if wants_json(request) else _redirect("/login")
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.post("/add-note")
async def add_note(
    request: Request,
    user: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    payload = await read_payload(request, NoteCreateIn)
    note = await services.notes.create(
        NoteFields(title=payload.title, content=payload.content, tags=payload.tags_csv(), link=payload.link),
        created_by=user,
    )
    logger.info("note_added", extra={"rid": _rid(request), "id": note.id})
    if wants_json(request):
        return JSONResponse(status_code=201, content=NoteCreatedOut(note=NoteOut.from_entity(note)).model_dump())
    return _redirect("/")


@router.get("/search", response_model=NoteListOut)
async def search(
    tag: Optional[str] = None,
    author: Optional[str] = Query(None, alias="user"),
    user: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    notes = await services.notes.get_all()
    result = run_search(notes, SearchCriteria(tag=tag, author=author))
    return NoteListOut(
        page="home",
        notes=[NoteOut.from_entity(n) for n in result.notes],
        tags=result.tags,
        search=tag or "",
        description=result.description,
        user=user,
    )


@router.post("/delete-note")
async def delete_note(
    request: Request,
    user: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    payload = await read_payload(request, NoteDeleteIn)
    await services.notes.delete(payload.noteId.strip())
    logger.info("note_deleted", extra={"rid": _rid(request), "id": payload.noteId, "by": user})
    if wants_json(request):
        return {"ok": True}
    return _redirect("/")


@router.get("/notes/{note_id}", response_model=NoteCreatedOut)
async def get_note(note_id: str, user: str = Depends(current_user), services: Services = Depends(get_services)):
    note = await services.notes.get(note_id)
    if note is None:
        raise NotFoundError("Note not found", code="note_not_found")
    return NoteCreatedOut(note=NoteOut.from_entity(note))


@router.post("/notes/{note_id}/comments")
async def add_comment(
    note_id: str,
    request: Request,
    user: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    payload = await read_payload(request, CommentIn)
    comment = await services.comments.append_comment(note_id, payload.text, user)
    if wants_json(request):
        return CommentCreatedOut(comment=CommentOut.from_entity(comment)).model_dump()
    return _redirect("/")


@debug_router.get("/debug/db")
async def debug_db(user: str = Depends(current_user), services: Services = Depends(get_services)):
    keys = await services.store.list()
    out: dict[str, object] = {}
    for key in keys:
        if not (key.startswith(NOTE_PREFIX) or key.startswith(USER_PREFIX)):
            continue
        try:
            value = await services.store.get(key)
        except StoreError:
            out[key] = {"_error": "unreadable value"}
            continue
        if key.startswith(USER_PREFIX) and isinstance(value, dict):
            value = {k: ("<redacted>" if k in {"password", "passwordHash"} else v) for k, v in value.items()}
        out[key] = value
    return out
