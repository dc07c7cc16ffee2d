"""
Resolution of model references to fetchable URLs.

Model URLs in circuit records come in several shapes: absolute URLs,
``node_modules/...`` package paths, absolute filesystem paths (POSIX or
Windows), and bare relative paths. Everything resolves to either an
absolute http(s) URL or a ``file://`` URL.
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode, urljoin

import logging

logger = logging.getLogger(__name__)

URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z\d+.-]*://")
WINDOWS_ABSOLUTE_PATH_RE = re.compile(r"^[A-Za-z]:[\\/]")

PACKAGE_DOWNLOAD_ENDPOINT = "package_files/download"
PACKAGE_DIST_PREFIX = "dist/"
REGISTRY_SCOPE = "@tsci"


@dataclass(frozen=True)
class PackageFileRef:
    package_name: str
    file_path: str


def has_url_scheme(value: str) -> bool:
    return bool(URL_SCHEME_RE.match(value))


def ensure_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else f"{url}/"


def file_url_from_absolute_path(path: str) -> str:
    """``/a/b`` -> ``file:///a/b``; ``C:\\a\\b`` -> ``file:///C:/a/b``."""
    if WINDOWS_ABSOLUTE_PATH_RE.match(path):
        return "file:///" + path.replace("\\", "/")
    return "file://" + path


def extract_package_info(request_path: str) -> Optional[PackageFileRef]:
    """Split a ``node_modules/<pkg>/<file>`` path into package and file.

    Registry-scoped names ``@tsci/author.pkg`` are rewritten to the
    registry form ``@author/pkg``. Returns None for non-package paths.
    """
    path = re.sub(r"^/?(\./)?", "", request_path)
    if not path.startswith("node_modules/"):
        return None
    path = path[len("node_modules/"):]
    parts = path.split("/")

    if path.startswith("@"):
        if len(parts) < 3:
            return None
        scope, scoped_name = parts[0], parts[1]
        file_path = "/".join(parts[2:])
        if scope == REGISTRY_SCOPE and "." in scoped_name:
            author, pkg = scoped_name.split(".", 1)
            package_name = f"@{author}/{pkg}"
        else:
            package_name = f"{scope}/{scoped_name}"
    else:
        if len(parts) < 2:
            return None
        package_name = parts[0]
        file_path = "/".join(parts[1:])

    if not package_name or not file_path:
        return None
    return PackageFileRef(package_name=package_name, file_path=file_path)


def package_download_url(ref: PackageFileRef, project_base_url: str) -> str:
    """Package-file download endpoint for the latest published version."""
    file_path = ref.file_path
    if not file_path.startswith(PACKAGE_DIST_PREFIX):
        file_path = PACKAGE_DIST_PREFIX + file_path
    query = urlencode({
        "package_name_with_version": f"{ref.package_name}@latest",
        "file_path": file_path,
    })
    endpoint = urljoin(ensure_trailing_slash(project_base_url), PACKAGE_DOWNLOAD_ENDPOINT)
    return f"{endpoint}?{query}"


def resolve_model_url(
    url: str,
    project_base_url: Optional[str] = None,
    cwd: Optional[Path] = None,
) -> str:
    """Resolve a model reference to an absolute URL.

    Order: URLs with a scheme pass through; package paths go to the
    download endpoint when a project base is known; absolute paths become
    file URLs; relative paths join the project base, else the working
    directory.
    """
    if has_url_scheme(url):
        return url

    package_ref = extract_package_info(url)
    if package_ref is not None and project_base_url:
        resolved = package_download_url(package_ref, project_base_url)
    elif url.startswith("/") or WINDOWS_ABSOLUTE_PATH_RE.match(url):
        resolved = file_url_from_absolute_path(url)
    elif project_base_url:
        relative = re.sub(r"^\./", "", url)
        resolved = urljoin(ensure_trailing_slash(project_base_url), relative)
    else:
        base_dir = (cwd or Path.cwd()).as_posix()
        base = ensure_trailing_slash(file_url_from_absolute_path(base_dir))
        resolved = urljoin(base, url)

    logger.debug("Resolved model URL %s -> %s", url, resolved)
    return resolved
