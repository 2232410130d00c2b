# recitescore/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from recitescore.core.config import settings
from recitescore.core.logging_config import setup_logging
from recitescore.db.session import init_db
from recitescore.api.v1.endpoints import health, recitations, speech_recognition

setup_logging()

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    init_db()


app.include_router(recitations.router, prefix="/api/v1")
app.include_router(speech_recognition.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")

# local storage urls point here (PUBLIC_BASE_URL)
if settings.STORAGE_BACKEND.lower() == "local":
    app.mount(
        "/media",
        StaticFiles(directory=settings.STORAGE_DIR, check_dir=False),
        name="media",
    )
