"""Repository URL utilities."""

from __future__ import annotations

from urllib.parse import urlsplit


def trim_remote_url(repo_url: str) -> str:
    """Reduce a declared repository URL to ``https://host/owner/repo``.

    Crates that live in a subdirectory of a larger repository often declare
    URLs such as ``https://github.com/org/repo/tree/main/crate``; only the
    ``owner/repo`` part is cloneable.

    Handles:
      - https://github.com/owner/repo
      - https://github.com/owner/repo.git
      - https://github.com/owner/repo/tree/main/sub/crate
      - git@github.com:owner/repo.git

    Raises ValueError if the URL has no host, owner or repo.
    """
    url = repo_url.strip()

    # SSH format: git@github.com:owner/repo
    if url.startswith("git@") and "://" not in url:
        host_part, _, path = url[len("git@") :].partition(":")
        url = f"ssh://{host_part}/{path}"

    parts = urlsplit(url)
    host = parts.hostname
    if not host:
        raise ValueError(f"invalid host for repository url {repo_url!r}")

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"repository url missing owner or repo: {repo_url!r}")
    owner = segments[0]
    repo = segments[1].removesuffix(".git")
    if not repo:
        raise ValueError(f"repository url missing repo: {repo_url!r}")

    return f"https://{host}/{owner}/{repo}"
