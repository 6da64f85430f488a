from typing import Any, List

from fastapi import APIRouter, Body, Depends, FastAPI
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException

from cost_client import CostServiceClient, get_cost_client
from errors import DependencyError
from logging_setup import configure_logging
from models import ExistsOut, UserRecord, UserWithTotal
from observer import RequestObserver
from repo_users import UserRepo
from routing import ObservedRoute, http_exception_handler
from service_users import UserService
from settings import settings


# One repo for the process; routes stay thin and the dependencies below
# are what tests override.
repo = UserRepo()


def get_user_repo() -> UserRepo:
    return repo


def get_user_service(
    user_repo: UserRepo = Depends(get_user_repo),
    cost_client: CostServiceClient = Depends(get_cost_client),
) -> UserService:
    return UserService(user_repo, cost_client)


root = APIRouter(route_class=ObservedRoute)
api = APIRouter(prefix="/api", route_class=ObservedRoute)


@root.get("/", response_class=PlainTextResponse)
def index():
    return "User REST API is running"


@root.get("/health")
def health(svc: UserService = Depends(get_user_service)):
    try:
        svc.health_check()
        return {"ok": True}
    except Exception as e:
        raise DependencyError(f"DB health check failed: {e}") from e


@api.get("/users", response_model=List[UserRecord])
def list_users(svc: UserService = Depends(get_user_service)):
    return svc.list_users()


@api.post("/add", status_code=201, response_model=UserRecord)
def add_user(
    payload: Any = Body(None),
    svc: UserService = Depends(get_user_service),
):
    return svc.create_user(payload)


@api.get("/exists/{id}", response_model=ExistsOut)
def user_exists(id: str, svc: UserService = Depends(get_user_service)):
    return ExistsOut(exists=svc.user_exists(id))


# Declared last: `/{id}` would otherwise shadow `/users`.
@api.get("/{id}", response_model=UserWithTotal)
async def get_user_with_total(id: str, svc: UserService = Depends(get_user_service)):
    return await svc.get_user_with_total(id)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="User REST API")
    app.state.observer = RequestObserver()
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.include_router(root)
    app.include_router(api)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.host, port=settings.port)
