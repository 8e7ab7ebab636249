# uvicorn figma_slides.backend.api:app --reload --host 0.0.0.0 --port 8000

from typing import Literal

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from ..exceptions import (
    DocumentTooLargeError,
    FigmaAuthError,
    FigmaAPIError,
    FigmaRequestTooLargeError,
    InvalidDocumentRefError,
    SlideLibraryError,
    SlideNotFoundError,
)
from ..orchestrator import SlideLibraryOrchestrator


app = FastAPI(title="Figma Slide Library API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

orchestrator = SlideLibraryOrchestrator()


async def _ensure_services():
    # Ensure storage and the Figma client are ready before direct access
    await orchestrator._ensure_initialized()  # noqa: SLF001


class ImportRequest(BaseModel):
    document_ref: str = Field(..., description="Figma file key or URL")
    selected_node_ids: list[str] | None = None
    min_score: int | None = None
    high_fidelity: bool = False


class ClassifyRequest(BaseModel):
    document_ref: str
    selected_node_ids: list[str] | None = None


class DuplicateCheckRequest(BaseModel):
    slide_id: str | None = None
    text: str | None = None
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    scope: Literal["drafts", "all"] = "all"

    @model_validator(mode="after")
    def _require_target(self):
        if self.slide_id is None and not self.text:
            raise ValueError("Either slide_id or text is required")
        return self


class TokenUpdateRequest(BaseModel):
    token: str = Field(..., min_length=1)


@app.exception_handler(SlideLibraryError)
async def slide_library_error_handler(request: Request, exc: SlideLibraryError):
    if isinstance(exc, (DocumentTooLargeError, FigmaRequestTooLargeError)):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc), "suggestion": DocumentTooLargeError.suggestion},
        )
    if isinstance(exc, FigmaAuthError):
        return JSONResponse(status_code=401, content={"detail": str(exc)})
    if isinstance(exc, FigmaAPIError):
        return JSONResponse(status_code=502, content={"detail": str(exc)})
    if isinstance(exc, InvalidDocumentRefError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})
    if isinstance(exc, SlideNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/slides/import")
async def import_slides(payload: ImportRequest):
    result = await orchestrator.execute(
        mode="ingest",
        document_ref=payload.document_ref,
        selected_node_ids=payload.selected_node_ids,
        min_score=payload.min_score,
        high_fidelity=payload.high_fidelity,
    )
    return result.model_dump()


@app.post("/figma/classify")
async def classify_frames(payload: ClassifyRequest):
    return await orchestrator.execute(
        mode="classify",
        document_ref=payload.document_ref,
        selected_node_ids=payload.selected_node_ids,
    )


@app.get("/slides")
async def list_slides(scope: Literal["drafts", "all"] = "all", skip: int = 0, limit: int = 50):
    await _ensure_services()
    limit = max(1, min(limit, 200))

    slides = await orchestrator.storage.list_slides(scope=scope)  # type: ignore[union-attr]
    items = [slide.model_dump(mode="json") for slide in slides[skip:skip + limit]]
    return {"count": len(items), "total": len(slides), "items": items}


@app.get("/slides/duplicates")
async def find_duplicates(
    threshold: float | None = Query(default=None, ge=0.0, le=1.0),
    scope: Literal["drafts", "all"] = "all",
):
    report = await orchestrator.execute(mode="duplicates", threshold=threshold, scope=scope)
    return report.model_dump()


@app.post("/slides/duplicates/check")
async def check_duplicates(payload: DuplicateCheckRequest):
    matches = await orchestrator.execute(
        mode="check_duplicates",
        slide_id=payload.slide_id,
        text=payload.text,
        threshold=payload.threshold,
        scope=payload.scope,
    )
    return {
        "count": len(matches),
        "has_duplicates": bool(matches),
        "matches": [match.model_dump() for match in matches],
    }


@app.get("/slides/{slide_id}")
async def get_slide(slide_id: str):
    await _ensure_services()
    slide = await orchestrator.storage.get_slide(slide_id)  # type: ignore[union-attr]
    if slide is None:
        raise HTTPException(status_code=404, detail="Slide not found")
    return slide.model_dump(mode="json")


@app.delete("/slides/{slide_id}")
async def delete_slide(slide_id: str):
    await _ensure_services()
    if not await orchestrator.storage.delete_slide(slide_id):  # type: ignore[union-attr]
        raise HTTPException(status_code=404, detail="Slide not found")
    return {"deleted": slide_id}


@app.get("/figma/token")
async def validate_token():
    await _ensure_services()
    user = await orchestrator.client.validate_token()  # type: ignore[union-attr]
    return {"valid": True, "user": {"id": user.get("id"), "handle": user.get("handle")}}


@app.put("/figma/token")
async def update_token(payload: TokenUpdateRequest):
    await _ensure_services()
    await orchestrator.token_provider.update(payload.token)  # type: ignore[union-attr]
    user = await orchestrator.client.validate_token()  # type: ignore[union-attr]
    return {"valid": True, "user": {"id": user.get("id"), "handle": user.get("handle")}}


@app.on_event("shutdown")
async def shutdown_event():
    await orchestrator.close()
