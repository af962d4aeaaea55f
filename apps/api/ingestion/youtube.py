"""
YouTube Data API client for trend charts and channel video statistics.
"""

import logging
import re
from typing import Optional, List, Dict, Any
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)


class YouTubeClient:
    """Client for interacting with YouTube Data API v3."""

    def __init__(self, api_key: Optional[str] = None, credentials: Any = None):
        """
        Initialize YouTube client.

        Args:
            api_key: API key for public chart access
            credentials: OAuth2 credentials for a creator's own channel
        """
        if credentials:
            self.youtube = build("youtube", "v3", credentials=credentials, cache_discovery=False)
        elif api_key:
            self.youtube = build("youtube", "v3", developerKey=api_key, cache_discovery=False)
        else:
            raise ValueError("Either api_key or credentials must be provided")

    def get_most_popular_videos(
        self,
        region_code: str = "US",
        max_results: int = 50,
    ) -> List[Dict[str, Any]]:
        """
        Get the most-popular chart for a region.

        Raises HttpError so callers can treat quota/network errors as
        transient fetch failures.
        """
        response = self.youtube.videos().list(
            part="snippet,statistics,contentDetails",
            chart="mostPopular",
            regionCode=region_code,
            maxResults=max(1, min(max_results, 50)),
        ).execute()

        videos = []
        for item in response.get("items", []):
            snippet = item.get("snippet", {})
            stats = item.get("statistics", {})
            videos.append({
                "id": item["id"],
                "title": snippet.get("title", ""),
                "description": snippet.get("description", ""),
                "channel_title": snippet.get("channelTitle", ""),
                "published_at": snippet.get("publishedAt", ""),
                "thumbnail_url": snippet.get("thumbnails", {}).get("high", {}).get("url", ""),
                "language": snippet.get("defaultAudioLanguage") or snippet.get("defaultLanguage") or "en",
                "view_count": int(stats.get("viewCount", 0)),
                "like_count": int(stats.get("likeCount", 0)),
                "comment_count": int(stats.get("commentCount", 0)),
                "duration_seconds": self._parse_duration(item.get("contentDetails", {}).get("duration", "PT0S")),
            })
        return videos

    def get_channel_uploads(self, channel_id: str, max_results: int = 50) -> List[Dict[str, Any]]:
        """
        Get a channel's recent uploads, newest first.

        Returns:
            List of dicts with: id, title, description, published_at,
                                thumbnail_url, channel_title
        """
        response = self.youtube.search().list(
            part="id,snippet",
            channelId=channel_id,
            maxResults=max(1, min(max_results, 50)),
            order="date",
            type="video",
        ).execute()

        uploads = []
        for item in response.get("items", []):
            video_id = item.get("id", {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet", {})
            uploads.append({
                "id": video_id,
                "title": snippet.get("title", ""),
                "description": snippet.get("description", ""),
                "published_at": snippet.get("publishedAt", ""),
                "thumbnail_url": snippet.get("thumbnails", {}).get("high", {}).get("url", ""),
                "channel_title": snippet.get("channelTitle", ""),
            })
        return uploads

    def get_video_details(self, video_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """
        Get detailed stats for videos.

        Args:
            video_ids: List of video IDs (batched 50 per call)

        Returns:
            Dict mapping video_id to: view_count, like_count, comment_count,
                                      duration, duration_seconds
        """
        result = {}

        for i in range(0, len(video_ids), 50):
            batch = video_ids[i:i+50]

            try:
                response = self.youtube.videos().list(
                    part="statistics,contentDetails",
                    id=",".join(batch)
                ).execute()
            except HttpError as e:
                logger.warning("YouTube video details batch failed: %s", e)
                continue

            for item in response.get("items", []):
                stats = item.get("statistics", {})
                duration_str = item.get("contentDetails", {}).get("duration", "PT0S")
                result[item["id"]] = {
                    "view_count": int(stats.get("viewCount", 0)),
                    "like_count": int(stats.get("likeCount", 0)),
                    "comment_count": int(stats.get("commentCount", 0)),
                    "duration": duration_str,
                    "duration_seconds": self._parse_duration(duration_str),
                }

        return result

    def _parse_duration(self, duration: str) -> int:
        """Parse ISO 8601 duration to seconds."""
        match = re.match(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", duration or "")
        if not match:
            return 0

        hours = int(match.group(1) or 0)
        minutes = int(match.group(2) or 0)
        seconds = int(match.group(3) or 0)

        return hours * 3600 + minutes * 60 + seconds


def create_youtube_client_with_api_key(api_key: str) -> YouTubeClient:
    """Create a YouTube client using an API key."""
    return YouTubeClient(api_key=api_key)


def create_youtube_client_with_oauth(access_token: str) -> YouTubeClient:
    """Create a YouTube client using OAuth credentials."""
    from google.oauth2.credentials import Credentials
    credentials = Credentials(token=access_token)
    return YouTubeClient(credentials=credentials)
