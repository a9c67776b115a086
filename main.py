import sys
import os
import io
import logging
from fastapi import FastAPI, Depends, HTTPException, Request, UploadFile, File
from fastapi.responses import HTMLResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
import pandas as pd
from typing import List, Optional

# --- Import local modules ---
import models
import schemas
from database import SessionLocal, engine
from store import TreeRepository
from tree import MISSING_NAME, InvalidTreeError, NodeNotFoundError, NodeRecord, RootExistsError
from viewport import Viewport, framed_size, magnify_changed, magnify_ended

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Path Correction for PyInstaller ---
def resource_path(relative_path):
    try:
        base_path = sys._MEIPASS
    except Exception:
        base_path = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(base_path, relative_path)

# Create database tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI(title="Graph")

templates_dir = resource_path("templates")
templates = Jinja2Templates(directory=templates_dir)

EXPORT_COLUMNS = ["id", "name", "is_root", "parent_id"]

# --- Dependencies ---
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_repository(db: Session = Depends(get_db)) -> TreeRepository:
    return TreeRepository(db)

def not_found(exc: NodeNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))

# --- Pages ---
@app.get("/", response_class=HTMLResponse)
def read_root(request: Request, repo: TreeRepository = Depends(get_repository)):
    tree = repo.load()
    return templates.TemplateResponse(
        request,
        "index.html",
        {"root": tree.nested(), "count": len(tree), "missing_name": MISSING_NAME},
    )

# --- Tree queries ---
@app.get("/api/tree", response_model=schemas.TreeResponse)
def get_tree(repo: TreeRepository = Depends(get_repository)):
    tree = repo.load()
    return {"count": len(tree), "root": tree.nested()}

@app.get("/api/nodes", response_model=List[schemas.Node])
def get_all_nodes(repo: TreeRepository = Depends(get_repository)):
    return list(repo.load().walk())

@app.get("/api/nodes/export")
def export_nodes(repo: TreeRepository = Depends(get_repository)):
    nodes = list(repo.load().walk())
    if not nodes:
        raise HTTPException(status_code=404, detail="No nodes to export.")
    df = pd.DataFrame(
        [{"id": n.id, "name": n.name, "is_root": n.is_root, "parent_id": n.parent_id} for n in nodes],
        columns=EXPORT_COLUMNS,
    )
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, index=False, sheet_name='Nodes')
    output.seek(0)
    headers = {'Content-Disposition': 'attachment; filename="graph_export.xlsx"'}
    return StreamingResponse(output, headers=headers, media_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')

@app.get("/api/nodes/{node_id}", response_model=schemas.Node)
def get_node(node_id: str, repo: TreeRepository = Depends(get_repository)):
    try:
        return repo.load().get(node_id)
    except NodeNotFoundError as exc:
        raise not_found(exc)

# --- Tree mutations ---
@app.post("/api/root", response_model=schemas.Node)
def create_root(repo: TreeRepository = Depends(get_repository)):
    try:
        return repo.create_root()
    except RootExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

@app.post("/api/nodes/{node_id}/children", response_model=schemas.Node)
def add_child(node_id: str, repo: TreeRepository = Depends(get_repository)):
    try:
        return repo.add_child(node_id)
    except NodeNotFoundError as exc:
        raise not_found(exc)

@app.post("/api/nodes/{node_id}/promote", response_model=Optional[schemas.Node])
def promote_to_root(node_id: str, repo: TreeRepository = Depends(get_repository)):
    try:
        return repo.promote_to_root(node_id)
    except NodeNotFoundError as exc:
        raise not_found(exc)

@app.put("/api/nodes/{node_id}", response_model=schemas.Node)
def rename_node(node_id: str, node: schemas.NodeRename, repo: TreeRepository = Depends(get_repository)):
    try:
        return repo.rename(node_id, node.name)
    except NodeNotFoundError as exc:
        raise not_found(exc)

@app.delete("/api/nodes/{node_id}", response_model=schemas.DeleteResult)
def delete_node(node_id: str, repo: TreeRepository = Depends(get_repository)):
    try:
        removed = repo.delete_node(node_id)
    except NodeNotFoundError as exc:
        raise not_found(exc)
    return {"detail": "Node deleted successfully", "deleted": removed}

@app.post("/api/restart", response_model=schemas.RestartResult)
def restart(repo: TreeRepository = Depends(get_repository)):
    count = repo.restart()
    logger.info("Restart requested, %d nodes removed", count)
    return {"detail": "All nodes deleted", "deleted": count}

@app.post("/api/nodes/import")
def import_nodes(file: UploadFile = File(...), repo: TreeRepository = Depends(get_repository)):
    if not file.filename or not file.filename.endswith('.xlsx'):
        raise HTTPException(status_code=400, detail="Invalid file format. Please upload an .xlsx file.")
    try:
        df = pd.read_excel(file.file, dtype={"id": str, "parent_id": str, "name": str})
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to read Excel file: {str(e)}")
    missing = [c for c in ("id", "parent_id") if c not in df.columns]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing columns: {', '.join(missing)}")

    df = df.astype(object).where(pd.notnull(df), None)
    records = []
    for row in df.to_dict(orient="records"):
        if row.get("id") is None:
            continue
        name = row.get("name")
        parent_id = row.get("parent_id")
        records.append(NodeRecord(
            id=str(row["id"]),
            name=str(name) if name is not None else None,
            is_root=bool(row.get("is_root") or False),
            parent_id=str(parent_id) if parent_id is not None else None,
        ))
    try:
        count = repo.replace_all(records)
    except InvalidTreeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid tree: {exc}")
    return {"detail": f"Successfully processed {count} rows."}

# --- Pinch-zoom ---
@app.post("/api/viewport/magnify", response_model=schemas.MagnifyResponse)
def magnify(gesture: schemas.MagnifyInput):
    viewport = Viewport(**gesture.viewport.model_dump())
    if gesture.phase == "ended":
        viewport = magnify_ended(viewport)
    else:
        try:
            viewport = magnify_changed(viewport, gesture.value)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
    frame = None
    if gesture.size is not None:
        width, height = framed_size(viewport, (gesture.size.width, gesture.size.height))
        frame = {"width": width, "height": height}
    return {"viewport": {"scale": viewport.scale, "last_scale_value": viewport.last_scale_value}, "frame": frame}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
