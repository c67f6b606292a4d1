"""Spotify Web API core for the Record OS music browser (OAuth PKCE).

Login without a client secret, a single authenticated request gateway with
bounded refresh-and-retry, and a library scan that surfaces albums by release
decade while pages are still arriving.
"""

from .auth import AuthState, AuthorizationFlow
from .cache import AlbumCache
from .client import SpotifyClient
from .credential_store import Credential, CredentialStore
from .decades import DECADES, DecadeBoard
from .errors import (
    AccessDenied,
    ApiError,
    AuthorizationDenied,
    MissingVerifier,
    NetworkError,
    NoRefreshToken,
    NotAuthenticated,
    RecordOSError,
    SessionExpired,
    TokenExchangeFailed,
)
from .gateway import ApiGateway
from .library import AlbumSummary
from .models import (
    Album,
    AlbumsDiscovered,
    DecadeReady,
    Progress,
    ScanComplete,
    SyncProgress,
    TrackItem,
    TracksLoaded,
)
from .pkce import PKCEPair, generate_challenge
from .player import PlaybackController
from .sync import LibrarySync

__all__ = [
    "AuthState",
    "AuthorizationFlow",
    "AlbumCache",
    "SpotifyClient",
    "Credential",
    "CredentialStore",
    "DECADES",
    "DecadeBoard",
    "AccessDenied",
    "ApiError",
    "AuthorizationDenied",
    "MissingVerifier",
    "NetworkError",
    "NoRefreshToken",
    "NotAuthenticated",
    "RecordOSError",
    "SessionExpired",
    "TokenExchangeFailed",
    "ApiGateway",
    "AlbumSummary",
    "Album",
    "AlbumsDiscovered",
    "DecadeReady",
    "Progress",
    "ScanComplete",
    "SyncProgress",
    "TrackItem",
    "TracksLoaded",
    "PKCEPair",
    "generate_challenge",
    "PlaybackController",
    "LibrarySync",
]
