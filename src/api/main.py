from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes.embeddings import router as embeddings_router
from src.api.routes.meetings import router as meetings_router
from src.api.routes.query import router as query_router

app = FastAPI(
    title="Meeting RAG API",
    description="Retrieval-augmented answers over recorded meeting transcripts",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(meetings_router)
app.include_router(query_router)
app.include_router(embeddings_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
