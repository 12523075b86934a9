from typing import Any, Dict, List, Optional, Sequence

from .client import SpotifyClient


class SpotifyDataLoader:
    """Flattens raw Web API track objects for downstream playlist logic.

    Normalized track dicts:
      - required: artist, track
      - recommended: album, uri, spotify_id, release_date, duration_ms, explicit, popularity
      - optional: added_at (liked songs only), isrc, external_url
    """

    def __init__(self, client: SpotifyClient):
        self.client = client

    async def load_liked_songs(self, *, max_tracks: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return the user's saved tracks (Liked Songs), normalized.

        max_tracks:
          Optional cap applied after fetching.
        """

        raw = await self.client.get_liked_songs()
        tracks = self._normalize_all(raw)
        if max_tracks is not None:
            tracks = tracks[: int(max_tracks)]
        return tracks

    async def load_track_details(self, track_ids: Sequence[str]) -> List[Dict[str, Any]]:
        ids = [str(i).strip() for i in (track_ids or []) if str(i).strip()]
        if not ids:
            return []
        return self._normalize_all(await self.client.get_track_details(ids))

    @classmethod
    def _normalize_all(cls, raw_tracks: List[Any]) -> List[Dict[str, Any]]:
        out = []
        for t in raw_tracks:
            normalized = cls._normalize_track(t)
            if normalized:
                out.append(normalized)
        return out

    @staticmethod
    def _normalize_artist_list(artists: Any) -> str:
        if not isinstance(artists, list):
            return ""
        names = []
        for a in artists:
            if isinstance(a, dict) and a.get("name"):
                names.append(str(a.get("name")).strip())
        names = [n for n in names if n]
        # de-dupe preserving order
        seen = set()
        uniq = []
        for n in names:
            key = n.casefold()
            if key in seen:
                continue
            seen.add(key)
            uniq.append(n)
        return ", ".join(uniq)

    @classmethod
    def _normalize_track(cls, track_obj: Any) -> Optional[Dict[str, Any]]:
        # /tracks returns null for unknown ids
        if not isinstance(track_obj, dict):
            return None

        if track_obj.get("is_local"):
            return None

        album = track_obj.get("album") or {}
        external_ids = track_obj.get("external_ids") or {}
        external_urls = track_obj.get("external_urls") or {}

        out: Dict[str, Any] = {
            "artist": cls._normalize_artist_list(track_obj.get("artists")),
            "track": (track_obj.get("name") or ""),
            "album": album.get("name") if isinstance(album, dict) else None,
            "uri": track_obj.get("uri"),
            "spotify_id": track_obj.get("id"),
            "duration_ms": track_obj.get("duration_ms"),
            "explicit": track_obj.get("explicit"),
            "popularity": track_obj.get("popularity"),
            "release_date": album.get("release_date") if isinstance(album, dict) else None,
            "added_at": track_obj.get("added_at"),
            "isrc": external_ids.get("isrc") if isinstance(external_ids, dict) else None,
            "external_url": external_urls.get("spotify") if isinstance(external_urls, dict) else None,
        }

        # Strip empties (keep numeric/bool values if present)
        cleaned: Dict[str, Any] = {}
        for k, v in out.items():
            if v is None:
                continue
            if isinstance(v, str) and not v.strip():
                continue
            cleaned[k] = v

        if not cleaned.get("artist") or not cleaned.get("track"):
            return None

        return cleaned
