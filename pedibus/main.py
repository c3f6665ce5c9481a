from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pedibus.src import schemas
from pedibus.src.constants import API_TITLE, API_VERSION
from pedibus.api.controller import app_instructor, app_parent, app_public


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/instructor", app_instructor, "Instructor API")
app.mount("/parent", app_parent, "Parent API")
app.mount("/public", app_public, "Public API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
