# app/services/ftp.py
import logging
import os

from pyftpdlib.authorizers import DummyAuthorizer
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.servers import FTPServer

logger = logging.getLogger("ftp")

BANNER = "Welcome to Event Photo Ingest Server"
# list, change dir, retrieve, append, delete, rename, mkdir, store
ANONYMOUS_PERMS = "elradfmw"


class IntakeFTPHandler(FTPHandler):
    """Anonymous FTP sessions that all share the intake root.

    The handler only moves bytes; the intake watcher picks files up from disk.
    """

    banner = BANNER

    def on_login(self, username):
        logger.info(f"[FTP] {username} logged in from {self.remote_ip}")

    def on_file_received(self, file):
        logger.info(f"[FTP] Received {file}")

    def on_incomplete_file_received(self, file):
        logger.warning(f"[FTP] Incomplete upload {file}, removing it")
        try:
            os.remove(file)
        except OSError as e:
            logger.warning(f"[FTP] Could not remove {file}: {e}")


def build_ftp_server(intake_root: str, host: str = "0.0.0.0", port: int = 2121) -> FTPServer:
    os.makedirs(intake_root, exist_ok=True)
    authorizer = DummyAuthorizer()
    authorizer.add_anonymous(os.path.abspath(intake_root), perm=ANONYMOUS_PERMS)

    handler = type("BoundIntakeFTPHandler", (IntakeFTPHandler,), {"authorizer": authorizer})
    server = FTPServer((host, port), handler)
    logger.info(f"FTP server listening on {host}:{server.address[1]}, root {intake_root}")
    return server
