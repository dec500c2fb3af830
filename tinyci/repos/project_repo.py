"""Project repository -- database reads and writes for the projects table."""

from tinyci.repos.db import get_pool


async def save_project(
    repo_url: str,
    token: str,
    autodeploy: bool,
    branch: str = "",
) -> dict:
    """Insert a project configuration. Returns the created row as a dict."""
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        INSERT INTO projects (repo_url, token, autodeploy, branch)
        VALUES ($1, $2, $3, $4)
        RETURNING id, repo_url, token, autodeploy, branch
        """,
        repo_url,
        token,
        autodeploy,
        branch,
    )
    return dict(row)


async def get_current_project() -> dict | None:
    """Fetch the most recently saved project, or None."""
    pool = await get_pool()
    row = await pool.fetchrow(
        """
        SELECT id, repo_url, token, autodeploy, branch
        FROM projects
        ORDER BY id DESC LIMIT 1
        """
    )
    return dict(row) if row else None
