"""FastAPI dependencies: per-request connection, repository, services, caller identity."""

from __future__ import annotations

import sqlite3
from typing import Iterator

from fastapi import Depends, Header, Request

from lectio.config import LectioConfig
from lectio.db.connection import Database
from lectio.db.repository import Repository
from lectio.db.vectors import VectorIndex
from lectio.rag.llm_client import Embedder
from lectio.study.chat import ChatService

GUEST_USER = "guest-user"


def get_config(request: Request) -> LectioConfig:
    return request.app.state.config


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_embedder(request: Request) -> Embedder:
    return request.app.state.embedder


def get_conn(database: Database = Depends(get_database)) -> Iterator[sqlite3.Connection]:
    """One connection per request, closed when the request is done."""
    conn = database.connect()
    try:
        yield conn
    finally:
        conn.close()


def get_repo(conn: sqlite3.Connection = Depends(get_conn)) -> Repository:
    return Repository(conn)


def get_index(
    conn: sqlite3.Connection = Depends(get_conn),
    config: LectioConfig = Depends(get_config),
) -> VectorIndex:
    return VectorIndex.for_model(conn, config.embedding.model, config.embedding.dimensions)


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    return (x_user_id or "").strip() or GUEST_USER


def get_chat_service(
    repo: Repository = Depends(get_repo),
    index: VectorIndex = Depends(get_index),
    embedder: Embedder = Depends(get_embedder),
    config: LectioConfig = Depends(get_config),
    database: Database = Depends(get_database),
) -> ChatService:
    return ChatService(repo, index, embedder, config, connect=database.connect)
