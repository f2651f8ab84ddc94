from typing import Any

import requests


def _error_detail(response: requests.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def record_build(
    job: str,
    number: int,
    outcome: str,
    changes: list[str] | None = None,
    causes: list[tuple[str, int]] | None = None,
    server_url: str = "http://localhost:8000",
) -> dict[str, Any]:
    """
    Report a completed build to the notification server.

    Args:
        job: Job name
        number: Build number
        outcome: SUCCESS, UNSTABLE, FAILURE, ABORTED or NOT_BUILT
        changes: Change set authors as "Name <email>" strings
        causes: Upstream builds that triggered this one, as (job, number)
        server_url: Base URL of the notification server

    Returns:
        dict: The recorded build as returned by the server

    Raises:
        RuntimeError: If the request fails or the server rejects the build
    """
    payload = {
        "job": job,
        "number": number,
        "outcome": outcome.upper(),
        "changes": list(changes or []),
        "causes": [{"job": j, "number": n} for j, n in causes or []],
    }
    try:
        response = requests.post(f"{server_url}/builds", json=payload, timeout=30)
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error connecting to notification server: {e}")

    if response.status_code != 201:
        raise RuntimeError(
            f"Server rejected build ({response.status_code}): {_error_detail(response)}"
        )
    return response.json()


def get_recipients(
    job: str,
    number: int,
    providers: list[str] | None = None,
    server_url: str = "http://localhost:8000",
) -> dict[str, Any]:
    """
    Ask the notification server who should hear about a build.

    Args:
        job: Job name
        number: Build number of the triggering build
        providers: Recipient providers to use (server default if omitted)
        server_url: Base URL of the notification server

    Returns:
        dict: Report with "anchor", "identities" and "recipients"

    Raises:
        RuntimeError: If the request fails or the build is unknown
    """
    params = {"provider": providers} if providers else {}
    try:
        response = requests.get(
            f"{server_url}/jobs/{job}/builds/{number}/recipients",
            params=params,
            timeout=30,
        )
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error connecting to notification server: {e}")

    if response.status_code != 200:
        raise RuntimeError(
            f"Failed to resolve recipients ({response.status_code}): "
            f"{_error_detail(response)}"
        )
    return response.json()


def prune_builds(
    job: str, keep: int, server_url: str = "http://localhost:8000"
) -> dict[str, Any]:
    """
    Apply retention to a job on a running server.

    Pruning through the server shrinks both its database and the history it
    resolves recipients from.

    Returns:
        dict: "job", "deleted" and "retained" counts

    Raises:
        RuntimeError: If the request fails or the server rejects it
    """
    try:
        response = requests.delete(
            f"{server_url}/jobs/{job}/builds", params={"keep": keep}, timeout=30
        )
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error connecting to notification server: {e}")

    if response.status_code != 200:
        raise RuntimeError(
            f"Failed to prune builds ({response.status_code}): {_error_detail(response)}"
        )
    return response.json()
