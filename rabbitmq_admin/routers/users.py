"""User management – /api/users/* (administrators only)."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from rabbitmq_admin.deps import get_cluster_service, get_user_service, require_admin
from rabbitmq_admin.entities import User
from rabbitmq_admin.models import CreateUserRequest, UpdateUserRequest, UserResponse
from rabbitmq_admin.services.clusters import ClusterService
from rabbitmq_admin.services.users import UserService

router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(require_admin)])


async def _respond(users: UserService, user: User) -> UserResponse:
    return UserResponse.from_user(user, await users.clusters_of_user(user.id))


@router.get("", response_model=list[UserResponse])
async def list_users(users: UserService = Depends(get_user_service)) -> list[UserResponse]:
    return [await _respond(users, u) for u in await users.list_users()]


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    payload: CreateUserRequest,
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await users.create_user(payload.username, payload.password, payload.role)
    return await _respond(users, user)


# Static paths must be registered before /{user_id}.


@router.get("/unassigned", response_model=list[UserResponse])
async def list_unassigned_users(users: UserService = Depends(get_user_service)) -> list[UserResponse]:
    """Users that are not assigned to any cluster."""
    return [UserResponse.from_user(u) for u in await users.list_users_without_clusters()]


@router.get("/locked", response_model=list[UserResponse])
async def list_locked_users(users: UserService = Depends(get_user_service)) -> list[UserResponse]:
    return [await _respond(users, u) for u in await users.list_locked_users()]


@router.get("/by-cluster/{cluster_id}", response_model=list[UserResponse])
async def list_users_by_cluster(
    cluster_id: UUID,
    users: UserService = Depends(get_user_service),
) -> list[UserResponse]:
    return [await _respond(users, u) for u in await users.list_users_by_cluster(cluster_id)]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: UUID, users: UserService = Depends(get_user_service)) -> UserResponse:
    return await _respond(users, await users.get_user(user_id))


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    payload: UpdateUserRequest,
    users: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await users.update_user(
        user_id, username=payload.username, password=payload.password, role=payload.role
    )
    return await _respond(users, user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: UUID, users: UserService = Depends(get_user_service)) -> None:
    await users.delete_user(user_id)


@router.post("/{user_id}/unlock", response_model=UserResponse)
async def unlock_user(user_id: UUID, users: UserService = Depends(get_user_service)) -> UserResponse:
    return await _respond(users, await users.unlock_user(user_id))


@router.post("/{user_id}/clusters/{cluster_id}", response_model=UserResponse)
async def assign_cluster(
    user_id: UUID,
    cluster_id: UUID,
    users: UserService = Depends(get_user_service),
    clusters: ClusterService = Depends(get_cluster_service),
) -> UserResponse:
    await clusters.assign_user(cluster_id, user_id)
    return await _respond(users, await users.get_user(user_id))


@router.delete("/{user_id}/clusters/{cluster_id}", response_model=UserResponse)
async def remove_cluster(
    user_id: UUID,
    cluster_id: UUID,
    users: UserService = Depends(get_user_service),
    clusters: ClusterService = Depends(get_cluster_service),
) -> UserResponse:
    await clusters.unassign_user(cluster_id, user_id)
    return await _respond(users, await users.get_user(user_id))
