from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from app.core.rate_limit import limiter
from app.database import dispose_engines
from app.routers import chat, search


@asynccontextmanager
async def lifespan(app: FastAPI):
    print("✅ Recipe search backend starting")

    # Yield control to the application
    yield

    # Shutdown: close pooled database connections
    print("🔄 Shutting down, disposing database engines...")
    await dispose_engines()
    print("✅ Database engines disposed.")


app = FastAPI(title="Recipe Search Backend", version="1.0.0", lifespan=lifespan)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(chat.router, prefix="/api", tags=["chat"])


@app.get("/")
async def root():
    return {"message": "Recipe Search Backend API is running!"}
