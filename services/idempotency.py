# services/idempotency.py

"""
Idempotency-Key stores.

A key is claimed before the guarded operation runs. The claim row/value holds a
fingerprint of the request and, once the operation finished, its response.
A duplicate sees either the stored response (replay it) or an empty response
(the first request is still running).
"""

import hashlib
import json
import logging
from collections import namedtuple
from datetime import datetime, timedelta

import redis
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError

from db.extensions import db
from models.idempotencyKey import IdempotencyKey
from services.errors import Conflict, Transient

logger = logging.getLogger(__name__)

ClaimResult = namedtuple('ClaimResult', ['is_new', 'stored_response'])


def request_fingerprint(operation, **params):
    raw = json.dumps({'op': operation, 'params': params}, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


def _check_fingerprint(key, stored, fingerprint):
    if stored != fingerprint:
        raise Conflict(
            "Idempotency-Key was already used for a different request",
            key=key.rsplit(':', 1)[-1],
        )


class SqlIdempotencyStore:
    """
    Keys in the idempotency_keys table; the unique index serializes claims.

    A row lives ``ttl_seconds`` like its Redis counterpart. After that it is
    treated as gone, so a claim whose worker died before storing a response
    does not lock its key forever.
    """

    def __init__(self, ttl_seconds=24 * 3600):
        self.ttl_seconds = ttl_seconds

    def claim(self, key, fingerprint):
        # Second pass covers a key released or expired between INSERT and SELECT
        for _ in range(2):
            db.session.add(IdempotencyKey(key=key, request_hash=fingerprint))
            try:
                db.session.commit()
                return ClaimResult(True, None)
            except IntegrityError:
                db.session.rollback()
            except (OperationalError, InterfaceError) as e:
                db.session.rollback()
                raise Transient("Could not reserve idempotency key") from e
            existing = self.lookup(key, fingerprint)
            if existing is not None:
                return existing
        raise Conflict("Idempotency key is being claimed concurrently, please retry")

    def lookup(self, key, fingerprint):
        try:
            record = (
                IdempotencyKey.query
                .filter_by(key=key)
                .populate_existing()
                .first()
            )
            if record is not None and self._expired(record):
                self._drop(record)
                return None
        except (OperationalError, InterfaceError) as e:
            db.session.rollback()
            raise Transient("Could not read idempotency key") from e
        if record is None:
            return None
        _check_fingerprint(key, record.request_hash, fingerprint)
        return ClaimResult(False, record.response)

    def _expired(self, record):
        return record.created_at < datetime.utcnow() - timedelta(seconds=self.ttl_seconds)

    def _drop(self, record):
        if record.response is None:
            logger.warning(f"Idempotency key {record.key} was never completed, releasing it")
        # By id, so a fresh claim on the same key is left alone
        IdempotencyKey.query.filter_by(id=record.id).delete()
        db.session.commit()

    def store(self, key, response):
        try:
            record = IdempotencyKey.query.filter_by(key=key).first()
            if record is None:
                logger.warning(f"Idempotency key {key} vanished before its response was stored")
                return
            record.response = response
            db.session.commit()
        except (OperationalError, InterfaceError) as e:
            db.session.rollback()
            # The operation itself is committed; the key stays in flight until it expires
            logger.error(f"Could not store response for idempotency key {key}: {e}")

    def release(self, key):
        try:
            IdempotencyKey.query.filter_by(key=key).delete()
            db.session.commit()
        except (OperationalError, InterfaceError) as e:
            db.session.rollback()
            logger.error(f"Could not release idempotency key {key}: {e}")


class RedisIdempotencyStore:
    """Keys in Redis via SET NX with a TTL, shared across app instances."""

    PREFIX = 'idem'

    def __init__(self, client, ttl_seconds=24 * 3600):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def _redis_key(self, key):
        return f'{self.PREFIX}:{key}'

    def claim(self, key, fingerprint):
        value = json.dumps({'request': fingerprint, 'response': None})
        # Second pass covers a key that expired between SET NX and GET
        for _ in range(2):
            try:
                created = self.client.set(self._redis_key(key), value, nx=True, ex=self.ttl_seconds)
            except redis.exceptions.RedisError as e:
                raise Transient("Could not reserve idempotency key") from e
            if created:
                return ClaimResult(True, None)
            existing = self.lookup(key, fingerprint)
            if existing is not None:
                return existing
        raise Conflict("Idempotency key is being claimed concurrently, please retry")

    def lookup(self, key, fingerprint):
        try:
            raw = self.client.get(self._redis_key(key))
        except redis.exceptions.RedisError as e:
            raise Transient("Could not read idempotency key") from e
        if raw is None:
            return None
        record = json.loads(raw)
        _check_fingerprint(key, record.get('request'), fingerprint)
        return ClaimResult(False, record.get('response'))

    def store(self, key, response):
        try:
            raw = self.client.get(self._redis_key(key))
            fingerprint = json.loads(raw).get('request') if raw else None
            value = json.dumps({'request': fingerprint, 'response': response}, default=str)
            self.client.set(self._redis_key(key), value, ex=self.ttl_seconds)
        except redis.exceptions.RedisError as e:
            logger.error(f"Could not store response for idempotency key {key}: {e}")

    def release(self, key):
        try:
            self.client.delete(self._redis_key(key))
        except redis.exceptions.RedisError as e:
            logger.error(f"Could not release idempotency key {key}: {e}")
