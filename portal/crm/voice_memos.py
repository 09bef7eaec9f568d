"""Voice memos: recorded notes attached to a client or job, with transcripts."""

import logging

from portal.agents import transcribe as transcriber
from portal.core import storage
from portal.core.db import get_db, new_id, now_iso, row_to_dict, rows_to_dicts
from portal.crm import clients

log = logging.getLogger("lava.voice")


def save(data: bytes, client_id: str = None, job_id: str = None,
         duration_seconds: int = None, recorded_by: str = None,
         transcribe: bool = True) -> dict:
    if not data:
        raise ValueError("No audio recorded")
    memo_id = new_id()
    path = storage.upload(f"voice/{memo_id}.webm", data, content_type="audio/webm")

    transcript = None
    if transcribe and transcriber.is_available():
        result = transcriber.transcribe(data, filename=f"{memo_id}.webm")
        if result.get("ok"):
            transcript = result["text"]
        else:
            log.warning("Memo %s saved without transcript: %s", memo_id, result.get("error"))

    with get_db() as conn:
        conn.execute("""
            INSERT INTO voice_memos (id, client_id, job_id, storage_path, audio_url, transcript,
                                     duration_seconds, recorded_by, created_at)
            VALUES (?,?,?,?,?,?,?,?,?)
        """, (memo_id, client_id, job_id, path, storage.public_url(path), transcript,
              duration_seconds or 0, recorded_by or "User", now_iso()))
    log.info("Voice memo saved: %s (%ss)", memo_id, duration_seconds or 0,
             extra={"client_id": client_id, "job_id": job_id})
    clients.update_activity(client_id)
    return get_memo(memo_id)


def get_memo(memo_id: str) -> dict | None:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM voice_memos WHERE id=?", (memo_id,)).fetchone()
    return row_to_dict(row)


def list_memos(client_id: str = None, job_id: str = None, limit: int = 50) -> list:
    sql = "SELECT * FROM voice_memos WHERE 1=1"
    params = []
    if client_id:
        sql += " AND client_id=?"
        params.append(client_id)
    if job_id:
        sql += " AND job_id=?"
        params.append(job_id)
    sql += " ORDER BY created_at DESC LIMIT ?"
    params.append(limit)
    with get_db() as conn:
        return rows_to_dicts(conn.execute(sql, params).fetchall())


def delete(memo_id: str) -> bool:
    memo = get_memo(memo_id)
    if not memo:
        return False
    if memo.get("storage_path"):
        storage.remove(memo["storage_path"])
    with get_db() as conn:
        conn.execute("DELETE FROM voice_memos WHERE id=?", (memo_id,))
    return True


def update_transcript(memo_id: str, transcript: str) -> dict:
    with get_db() as conn:
        cur = conn.execute("UPDATE voice_memos SET transcript=? WHERE id=?",
                           (transcript or "", memo_id))
    if not cur.rowcount:
        raise LookupError(f"Voice memo {memo_id} not found")
    return get_memo(memo_id)
