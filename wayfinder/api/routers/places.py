from urllib.parse import unquote

import requests
from fastapi import APIRouter, HTTPException, Query, Request, Response

router = APIRouter(prefix="/places", tags=["places"])


@router.get("/photo")
async def get_place_photo(
    request: Request,
    ref: str = Query(..., description="Google Places photo resource name"),
    w: int = Query(600, ge=1, le=1600, description="Maximum width in pixels"),
) -> Response:
    """
    Proxy endpoint for Google Places photos.
    Recommendation cards link here so the Maps API key never reaches the client.
    """
    places = request.app.state.places
    if places is None:
        raise HTTPException(status_code=503, detail="Place lookup is not configured")

    photo_url = places.get_place_photo_url(unquote(ref), max_width=w)
    if not photo_url:
        raise HTTPException(status_code=400, detail="Invalid photo reference")

    try:
        response = requests.get(photo_url, timeout=places.timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch photo: {str(e)}")

    return Response(
        content=response.content,
        media_type=response.headers.get("Content-Type", "image/jpeg"),
        headers={"Cache-Control": "public, max-age=86400"},
    )
