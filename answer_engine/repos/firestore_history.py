# answer_engine/repos/firestore_history.py
import hashlib
import re
from typing import List
from urllib.parse import quote

from google.api_core.exceptions import AlreadyExists, GoogleAPICallError
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore
from pydantic import ValidationError

from answer_engine import config
from answer_engine.errors import HistoryStoreError
from answer_engine.repos.history_store import HistoryStore
from answer_engine.schemas.history import QuestionRecord

BATCH_LIMIT = 500


def record_id(question_key: str) -> str:
    """
    Document id for a record.
    Same normalised question -> same id, so `create()` refuses duplicates.
    """
    return hashlib.sha256(question_key.encode("utf-8")).hexdigest()[:40]


def user_doc_id(userId: str) -> str:
    """
    Percent-encoded user id, safe as a single path segment.
    Firestore rejects "/" in ids, ids "." and "..", and ids matching __.*__.
    """
    doc_id = quote(userId, safe="")
    if doc_id in (".", "..") or re.fullmatch(r"__.*__", doc_id):
        doc_id = doc_id.replace(".", "%2E").replace("_", "%5F")
    return doc_id


class FirestoreHistoryRepo(HistoryStore):
    """
    Layout:
        <FIRESTORE_COLLECTION>/<user_doc_id(userId)>/records/<recordId>
    """

    def __init__(self, client=None):
        if client is None:
            project = config.FIRESTORE_PROJECT
            if not project:
                raise RuntimeError("FIRESTORE_PROJECT is required for HISTORY_BACKEND=firestore")

            try:
                client = firestore.Client(project=project)
            except DefaultCredentialsError as e:
                raise RuntimeError(f"Firestore credentials error: {e}") from e

        self._db = client

    def _records(self, userId: str):
        return (
            self._db
            .collection(config.FIRESTORE_COLLECTION)
            .document(user_doc_id(userId))
            .collection("records")
        )

    def _snapshots(self, userId: str):
        return list(self._records(userId).order_by("timestamp").stream())

    # ---------------------------------------------------
    # Read
    # ---------------------------------------------------
    def get(self, userId: str) -> List[QuestionRecord]:
        try:
            snaps = self._snapshots(userId)
        except GoogleAPICallError as e:
            raise HistoryStoreError(f"firestore read failed: {e}") from e

        try:
            return [QuestionRecord.model_validate(s.to_dict()) for s in snaps]
        except ValidationError as e:
            raise HistoryStoreError(f"corrupt history entry in firestore: {e}") from e

    # ---------------------------------------------------
    # Write
    # ---------------------------------------------------
    def append(self, userId: str, record: QuestionRecord) -> bool:
        doc = self._records(userId).document(record_id(record.key()))

        try:
            doc.create(record.model_dump())
        except AlreadyExists:
            return False
        except GoogleAPICallError as e:
            raise HistoryStoreError(f"firestore append failed: {e}") from e

        return True

    def delete(self, userId: str, index: int) -> bool:
        try:
            snaps = self._snapshots(userId)
            if not 0 <= index < len(snaps):
                return False
            snaps[index].reference.delete()
        except GoogleAPICallError as e:
            raise HistoryStoreError(f"firestore delete failed: {e}") from e

        return True

    def clear(self, userId: str) -> bool:
        try:
            refs = [snap.reference for snap in self._records(userId).stream()]

            # Firestore caps a batch at 500 writes
            for i in range(0, len(refs), BATCH_LIMIT):
                batch = self._db.batch()
                for ref in refs[i:i + BATCH_LIMIT]:
                    batch.delete(ref)
                batch.commit()
        except GoogleAPICallError as e:
            raise HistoryStoreError(f"firestore clear failed: {e}") from e

        return True
