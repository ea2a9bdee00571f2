"""
Rewrites resource URIs in replayed components to the recording's copy.

A recording bundles the meshes and material scripts it references under
its log directory, mirroring their original absolute paths. Playback
points replayed components at those copies: ``/home/u/arm.dae`` becomes
``<log root>/home/u/arm.dae``.

Recordings made before resources were bundled have no such copies. The
first URI whose prefixed path does not exist switches rewriting off for
the rest of the session and URIs are left as recorded.

Existence checks go through a PyFilesystem2 filesystem (OSFS('/') by
default) so tests can use a MemoryFS instead of the real disk.
"""

from typing import Optional

from fs.base import FS
from fs.errors import IllegalBackReference
from fs.osfs import OSFS
from fs.path import combine, normpath, relpath

from logplay.components import Geometry, Material, mesh_uri_equal, script_uri_equal
from logplay.ecm import EntityComponentManager
from logplay.logging import get_logger

log = get_logger('uri_rewriter')

FILE_PREFIX = "file://"


class ResourceURIRewriter:
    """Points mesh and material-script URIs at the recording's resources.

    Args:
        log_path: Absolute path of the log root directory
        resource_fs: Filesystem used to check that rewritten paths exist

    Example:
        rewriter = ResourceURIRewriter('/recordings/run1')
        rewriter.rewrite(ecm)   # safe to call after every applied message
    """

    def __init__(self, log_path: str, resource_fs: Optional[FS] = None):
        self.log_path = normpath(log_path)
        self._owns_fs = resource_fs is None
        self._fs = resource_fs if resource_fs is not None else OSFS('/')
        self._enabled = True
        self.rewritten = 0

    @property
    def enabled(self) -> bool:
        """False once the recording turned out to predate bundled resources."""
        return self._enabled

    def rewrite(self, ecm: EntityComponentManager) -> int:
        """Rewrite URIs of every mesh geometry and material in the world.

        Scans the current world rather than a diff, and URIs already under
        the log root are left alone, so repeated calls are harmless.

        Returns:
            Number of components whose URI changed in this call
        """
        if not self._enabled:
            return 0

        count = 0
        for entity, geometry in ecm.each(Geometry):
            uri = geometry.mesh_uri
            if not uri:
                continue
            new_uri = self.prepend_log_path(uri)
            if new_uri != uri:
                ecm.set_component_data(entity, geometry.with_mesh_uri(new_uri), mesh_uri_equal)
                count += 1

        for entity, material in ecm.each(Material):
            uri = material.script_uri
            if not uri:
                continue
            new_uri = self.prepend_log_path(uri)
            if new_uri != uri:
                ecm.set_component_data(entity, material.with_script_uri(new_uri), script_uri_equal)
                count += 1

        if count:
            log.debug("Rewrote %d resource URIs", count)
        self.rewritten += count
        return count

    def prepend_log_path(self, uri: str) -> str:
        """Map one URI into the log root, or return it unchanged.

        Only absolute paths and ``file://`` URIs are mapped; anything else
        (relative paths, ``model://``, ``https://``) is returned as is.
        """
        if not self._enabled or not uri:
            return uri

        has_prefix = uri.startswith(FILE_PREFIX)
        path = uri[len(FILE_PREFIX):] if has_prefix else uri
        if not path.startswith('/'):
            return uri
        if self._under_log_root(path):
            return uri

        try:
            candidate = combine(self.log_path, relpath(normpath(path)))
        except IllegalBackReference:
            return uri
        if not self._fs.exists(candidate):
            log.info("Resource [%s] not found in recording; assuming a log without "
                     "bundled resources and leaving URIs unchanged", candidate)
            self._enabled = False
            return uri

        return FILE_PREFIX + candidate if has_prefix else candidate

    def close(self) -> None:
        """Close the resource filesystem if this rewriter opened it."""
        if self._owns_fs:
            self._fs.close()

    def _under_log_root(self, path: str) -> bool:
        root = self.log_path.rstrip('/')
        return path == root or path.startswith(root + '/')
