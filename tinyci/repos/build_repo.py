"""Build repository -- database reads and writes for the builds table."""

from tinyci.repos.db import get_pool


async def save_build(build_id: str, repo_url: str, commit_id: str) -> None:
    """Insert the provenance record of a finished build."""
    pool = await get_pool()
    await pool.execute(
        "INSERT INTO builds (id, repo_url, commit_id) VALUES ($1, $2, $3)",
        build_id,
        repo_url,
        commit_id,
    )


async def get_last_build() -> dict | None:
    """Fetch the most recently recorded build, or None if there are none."""
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        SELECT id, repo_url, commit_id, timestamp
        FROM builds
        ORDER BY timestamp DESC LIMIT 1
        """
    )
    return dict(row) if row else None


async def get_last_build_for_repo(repo_url: str) -> dict | None:
    """Fetch the most recent build of *repo_url*, or None."""
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        SELECT id, repo_url, commit_id, timestamp
        FROM builds WHERE repo_url = $1
        ORDER BY timestamp DESC LIMIT 1
        """,
        repo_url,
    )
    return dict(row) if row else None


async def get_build_by_id(build_id: str) -> dict | None:
    """Fetch a single build record by id."""
    pool = await get_pool()
    row = await pool.fetchrow(
        "SELECT id, repo_url, commit_id, timestamp FROM builds WHERE id = $1",
        build_id,
    )
    return dict(row) if row else None
