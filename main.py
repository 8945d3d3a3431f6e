# main.py
# ------------------------------------------------------------------------------------
#  FastAPI service for DrexBanana (batch image edits with Gemini):
#  - POST /images, POST /prompts, PUT /vector-prompt, PUT /mode -> set up a batch
#  - POST /generate       -> build images x prompts and start generating
#  - POST /cancel         -> stop the batch (outstanding calls are ignored)
#  - POST /outputs/{id}/regenerate -> retry one finished output
#  - GET  /state          -> poll everything the UI renders
#  - GET  /files/{key}    -> stream local outputs or R2 (fallback)
#  - GET  /debug/config   -> runtime env (hide in prod)
#  Command routes are async so every state change happens on the event loop.
# ------------------------------------------------------------------------------------

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel, Field

import storage
from errors import BatchInProgressError, ValidationError
from gemini_client import generate_image_edit
from matrix import Mode
from settings import configure_logging, settings
from workspace import Workspace

configure_logging()
log = logging.getLogger(__name__)


async def generate_and_store(image_data: bytes, prompt_text: str) -> str:
    """Gemini edit -> stored image -> URL (the output's result)."""
    data, mime_type = await generate_image_edit(image_data, prompt_text)
    # boto3 upload / file write must not block the event loop
    return await run_in_threadpool(storage.save_output, data, mime_type)


workspace = Workspace(generate_and_store, concurrency_limit=settings.concurrency_limit)


def get_workspace() -> Workspace:
    return workspace


# ------------- FastAPI app --------------
app = FastAPI(title="DrexBanana API", version="0.1.0")

# In prod, tighten this list to your domains
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Schemas ----------
class PromptRequest(BaseModel):
    title: str = Field("", description="Label shown next to the outputs")
    text: str = Field(..., min_length=1, description="Edit instruction")


class VectorPromptRequest(BaseModel):
    text: str = Field("", description="Prompt applied to every image in vector mode")


class ModeRequest(BaseModel):
    mode: Mode


class OutputResponse(BaseModel):
    id: int
    source_image_id: int
    prompt_id: int
    status: str
    result: Optional[str] = None
    error: Optional[str] = None


# ---------- Health ----------
@app.get("/health")
def health():
    return {"ok": True, "storage": settings.storage}


# ---------- State ----------
@app.get("/state")
async def get_state(ws: Workspace = Depends(get_workspace)):
    return ws.snapshot()


@app.get("/outputs", response_model=List[OutputResponse])
async def list_outputs(ws: Workspace = Depends(get_workspace)):
    return [job.to_dict() for job in ws.store.all()]


@app.get("/outputs/{job_id}", response_model=OutputResponse)
async def get_output(job_id: int, ws: Workspace = Depends(get_workspace)):
    job = ws.store.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="output not found")
    return job.to_dict()


# ---------- Inputs ----------
@app.post("/images")
async def upload_images(files: List[UploadFile] = File(...), ws: Workspace = Depends(get_workspace)):
    uploads = []
    for f in files:
        data = await f.read()
        if not data:
            raise HTTPException(status_code=400, detail=f"empty file: {f.filename}")
        uploads.append((f.filename or "", data, f.content_type or "application/octet-stream"))
    added = ws.add_images(uploads)
    return {"images": [img.to_dict() for img in added]}


@app.delete("/images/{image_id}")
async def remove_image(image_id: int, ws: Workspace = Depends(get_workspace)):
    if not ws.remove_image(image_id):
        raise HTTPException(status_code=404, detail="image not found")
    return {"ok": True}


@app.delete("/images")
async def clear_images(ws: Workspace = Depends(get_workspace)):
    ws.clear_images()
    return {"ok": True}


@app.post("/prompts")
async def add_prompt(payload: PromptRequest, ws: Workspace = Depends(get_workspace)):
    return ws.add_prompt(payload.title, payload.text).to_dict()


@app.delete("/prompts/{prompt_id}")
async def remove_prompt(prompt_id: int, ws: Workspace = Depends(get_workspace)):
    if not ws.remove_prompt(prompt_id):
        raise HTTPException(status_code=404, detail="prompt not found")
    return {"ok": True}


@app.put("/vector-prompt")
async def set_vector_prompt(payload: VectorPromptRequest, ws: Workspace = Depends(get_workspace)):
    ws.set_vector_prompt(payload.text)
    return {"vector_prompt": ws.vector_prompt}


@app.put("/mode")
async def change_mode(payload: ModeRequest, ws: Workspace = Depends(get_workspace)):
    ws.change_mode(payload.mode)
    return {"mode": ws.mode.value}


# ---------- Batch ----------
@app.post("/generate", response_model=List[OutputResponse])
async def generate(ws: Workspace = Depends(get_workspace)):
    try:
        jobs = ws.build_and_start()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BatchInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return [job.to_dict() for job in jobs]


@app.post("/cancel")
async def cancel(ws: Workspace = Depends(get_workspace)):
    ws.cancel()
    return {"is_generating": ws.scheduler.is_generating}


@app.post("/outputs/{job_id}/regenerate", response_model=OutputResponse)
async def regenerate(job_id: int, ws: Workspace = Depends(get_workspace)):
    if not ws.store.get(job_id):
        raise HTTPException(status_code=404, detail="output not found")
    ws.regenerate(job_id)
    return ws.store.get(job_id).to_dict()


# ---------- Streaming route ----------
@app.get("/files/{key:path}")
def stream_file(key: str):
    if key.startswith("local/"):
        file_path = storage.local_path(key.split("/", 1)[1])
        if not file_path:
            raise HTTPException(status_code=404, detail="file not found")
        return FileResponse(file_path)

    if settings.use_r2:
        try:
            body, content_type = storage.get_object_stream(key)
        except Exception:
            raise HTTPException(status_code=404, detail="object not found")

        def iter_chunks():
            for chunk in iter(lambda: body.read(1024 * 1024), b""):
                yield chunk

        return StreamingResponse(iter_chunks(), media_type=content_type or "application/octet-stream")

    raise HTTPException(status_code=404, detail="file not found")


# ---------- Index ----------
@app.get("/")
def index():
    return {"service": "drexbanana-api", "storage": settings.storage, "public_base": settings.public_base_url}


# ---------- Debug (hide in prod) ----------
if settings.debug:
    @app.get("/debug/config")
    def debug_config():
        return {
            "STORAGE": settings.storage,
            "GEMINI_MODEL": settings.gemini_model,
            "GEMINI_API_BASE": settings.gemini_api_base,
            "API_CONCURRENCY_LIMIT": settings.concurrency_limit,
            "R2_ENDPOINT_URL": settings.r2_endpoint_url,
            "R2_PUBLIC_BASE": settings.r2_public_base,
            "R2_BUCKET": settings.r2_bucket,
        }
