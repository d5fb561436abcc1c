from fastapi import Request

from ocrflow.runtime.engine import JobEngine


def get_engine(request: Request) -> JobEngine:
    return request.app.state.engine
