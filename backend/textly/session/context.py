"""Explicitly constructed collaborators shared by every store of one session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from textly.domain.assist.client import AssistClient
from textly.domain.profiles.client import MetadataClient
from textly.domain.profiles.resolver import ProfileResolver
from textly.infra.changefeed import ChangeFeed
from textly.infra.datastore import Datastore
from textly.infra.local_cache import LocalCache
from textly.infra.redis import redis_client
from textly.session.identity import Identity


@dataclass(slots=True)
class SessionContext:
    identity: Identity
    datastore: Datastore
    cache: LocalCache
    resolver: ProfileResolver
    metadata: Optional[MetadataClient] = None
    assist: Optional[AssistClient] = None

    @property
    def user_id(self) -> str:
        return self.identity.id

    @property
    def feed(self) -> ChangeFeed:
        return self.datastore.feed

    @classmethod
    def build(
        cls,
        identity: Identity,
        datastore: Datastore,
        *,
        cache: Optional[LocalCache] = None,
        metadata: Optional[MetadataClient] = None,
        assist: Optional[AssistClient] = None,
    ) -> "SessionContext":
        cache = cache or LocalCache(redis_client)
        resolver = ProfileResolver(
            datastore.profiles,
            metadata,
            cache=cache,
            owner_id=identity.id,
        )
        return cls(
            identity=identity,
            datastore=datastore,
            cache=cache,
            resolver=resolver,
            metadata=metadata,
            assist=assist,
        )
