"""Typed accessors for the state document (users + cluster connections)."""

from __future__ import annotations

from typing import Any

from rabbitmq_admin.entities import ClusterConnection, User


def users_of(data: dict[str, Any]) -> dict[str, User]:
    return {key: User.model_validate(raw) for key, raw in data.get("users", {}).items()}


def clusters_of(data: dict[str, Any]) -> dict[str, ClusterConnection]:
    return {key: ClusterConnection.model_validate(raw) for key, raw in data.get("clusters", {}).items()}


def put_user(data: dict[str, Any], user: User) -> None:
    data.setdefault("users", {})[str(user.id)] = user.model_dump(mode="json")


def put_cluster(data: dict[str, Any], cluster: ClusterConnection) -> None:
    data.setdefault("clusters", {})[str(cluster.id)] = cluster.model_dump(mode="json")


def username_taken(data: dict[str, Any], username: str, exclude: str | None = None) -> bool:
    wanted = username.casefold()
    return any(
        key != exclude and user.username.casefold() == wanted
        for key, user in users_of(data).items()
    )


def cluster_name_taken(data: dict[str, Any], name: str, exclude: str | None = None) -> bool:
    wanted = name.casefold()
    return any(
        key != exclude and cluster.name.casefold() == wanted
        for key, cluster in clusters_of(data).items()
    )
