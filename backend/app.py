from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from typing import Optional, List
import os
import logging
from dotenv import load_dotenv

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load environment variables before modules that read them at import time
load_dotenv()

from services.process_management_service import ProcessManagementService
from services.errors import (
    TemplateNotFoundError, ProcessNotFoundError, TemplateValidationError, PersistenceError
)
from schemas.process_management import (
    ProcessTemplateCreate, ProcessTemplateUpdate, ProcessTemplateResponse,
    UseTemplateRequest, GeneratedProcessCreate, ProcessGraphResponse
)
from utils.auth import get_current_user_id, get_user_organization_id

# Database path (SQLite file)
database_path = os.getenv("DATABASE_PATH", "process_modeler.db")
if not os.path.isabs(database_path):
    # Make path relative to backend directory
    database_path = os.path.join(os.path.dirname(__file__), database_path)

seed_templates = os.getenv("SEED_TEMPLATES", "true").lower() in ("1", "true", "yes")

logger.info(f"Using SQLite database at: {database_path}")

process_management_service = ProcessManagementService(database_path)

# Lifespan event handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database connection on startup and close on shutdown"""
    logger.info("Starting up Process Modeler API...")
    try:
        await process_management_service.connect(seed_templates=seed_templates)
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise

    yield

    logger.info("Shutting down Process Modeler API...")
    await process_management_service.close()
    logger.info("Database connection closed")

app = FastAPI(
    title="Process Modeler",
    version="1.0.0",
    lifespan=lifespan,
    swagger_ui_parameters={
        "persistAuthorization": True,
    }
)

# Configure CORS
default_origins = "http://localhost:5173,http://localhost:5174,http://localhost:3000,http://localhost:8000"
allowed_origins = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", default_origins).split(",") if origin.strip()
]

logger.info(f"CORS enabled for origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    max_age=3600,
)

# Request payloads that fail validation are rejected with 400 before any write
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    details = [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation error", "details": details},
    )


@app.get("/")
async def root():
    return {"message": "Process Modeler API"}

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "dropped_connections": process_management_service.materializer.dropped_connections_total,
    }


# ============================================================================
# TEMPLATE ENDPOINTS
# ============================================================================

@app.get("/api/templates", response_model=List[ProcessTemplateResponse])
async def get_templates(
    category: Optional[str] = None,
    industry_sector: Optional[str] = None,
    organization_id: str = Depends(get_user_organization_id)
):
    """Get all templates visible to the caller's organization"""
    try:
        return await process_management_service.list_templates(organization_id, category, industry_sector)
    except Exception as e:
        logger.error(f"Error getting templates: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch templates")

@app.get("/api/templates/categories", response_model=List[str])
async def get_template_categories(organization_id: str = Depends(get_user_organization_id)):
    """Get all template categories"""
    try:
        return await process_management_service.get_template_categories(organization_id)
    except Exception as e:
        logger.error(f"Error getting template categories: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch template categories")

@app.get("/api/templates/{template_id}", response_model=ProcessTemplateResponse)
async def get_template(
    template_id: str,
    organization_id: str = Depends(get_user_organization_id)
):
    """Get a specific template"""
    try:
        return await process_management_service.get_template(template_id, organization_id)
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    except Exception as e:
        logger.error(f"Error getting template: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch template")

@app.post("/api/templates", response_model=ProcessTemplateResponse, status_code=201)
async def create_template(
    template_data: ProcessTemplateCreate,
    organization_id: str = Depends(get_user_organization_id)
):
    """Create a new template (public, or private to the caller's organization)"""
    try:
        return await process_management_service.create_template(template_data, organization_id)
    except TemplateValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Error creating template: {e}")
        raise HTTPException(status_code=500, detail="Failed to create template")

@app.put("/api/templates/{template_id}", response_model=ProcessTemplateResponse)
async def update_template(
    template_id: str,
    template_data: ProcessTemplateUpdate,
    organization_id: str = Depends(get_user_organization_id)
):
    """Update a template owned by the caller's organization"""
    try:
        return await process_management_service.update_template(template_id, template_data, organization_id)
    except TemplateNotFoundError:
        raise HTTPException(
            status_code=404,
            detail="Template not found or you do not have permission to update it"
        )
    except PersistenceError as e:
        logger.error(f"Error updating template: {e}")
        raise HTTPException(status_code=500, detail="Failed to update template")

@app.delete("/api/templates/{template_id}")
async def delete_template(
    template_id: str,
    organization_id: str = Depends(get_user_organization_id)
):
    """Delete a template owned by the caller's organization"""
    try:
        await process_management_service.delete_template(template_id, organization_id)
        return {"success": True, "message": "Template deleted successfully"}
    except TemplateNotFoundError:
        raise HTTPException(
            status_code=404,
            detail="Template not found or you do not have permission to delete it"
        )
    except PersistenceError as e:
        logger.error(f"Error deleting template: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete template")

@app.post("/api/templates/{template_id}/use", status_code=201)
async def use_template(
    template_id: str,
    request: Optional[UseTemplateRequest] = None,
    user_id: str = Depends(get_current_user_id),
    organization_id: str = Depends(get_user_organization_id)
):
    """Create a process from a template"""
    try:
        process = await process_management_service.create_process_from_template(
            template_id, request, organization_id, user_id
        )
        return {
            "success": True,
            "message": "Process created from template successfully",
            "process": process,
        }
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    except TemplateValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Use template error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create process from template")


# ============================================================================
# PROCESS ENDPOINTS
# ============================================================================

@app.post("/api/processes/from-graph", status_code=201)
async def create_process_from_graph(
    process_data: GeneratedProcessCreate,
    user_id: str = Depends(get_current_user_id),
    organization_id: str = Depends(get_user_organization_id)
):
    """Persist a generated process graph (already laid out)"""
    try:
        process = await process_management_service.create_process_from_graph(
            process_data, organization_id, user_id
        )
        return {
            "success": True,
            "message": "Process created successfully",
            "process": process,
        }
    except PersistenceError as e:
        logger.error(f"Create process error: {e}")
        raise HTTPException(status_code=500, detail="Failed to create process")

@app.get("/api/processes/{process_id}", response_model=ProcessGraphResponse)
async def get_process(
    process_id: str,
    organization_id: str = Depends(get_user_organization_id)
):
    """Get a process with its steps and connections"""
    try:
        return await process_management_service.get_process(process_id, organization_id)
    except ProcessNotFoundError:
        raise HTTPException(status_code=404, detail="Process not found")
    except Exception as e:
        logger.error(f"Error getting process: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch process")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
