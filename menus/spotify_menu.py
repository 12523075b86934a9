import secrets
import time
import webbrowser

import questionary

from spotify_agent import CreatePlaylistRequest, SpotifyClient, SpotifyError, extract_code_from_redirect_url
from utils.logger import log_error, log_info, log_success, log_warning


async def spotify_menu(client: SpotifyClient) -> None:
    """
    Display the Spotify menu and dispatch the selected action.
    Errors from a single action are reported and the menu keeps running.
    """
    while True:
        choice = await questionary.select(
            "🎵 Spotify Menu — What would you like to do?",
            choices=[
                "Log in to Spotify",
                "Show session status",
                "Count liked songs",
                "Create playlist from liked songs",
                "Log out",
                "Exit",
            ],
        ).ask_async()

        try:
            if choice == "Log in to Spotify":
                await login(client)

            elif choice == "Show session status":
                show_status(client)

            elif choice == "Count liked songs":
                await count_liked_songs(client)

            elif choice == "Create playlist from liked songs":
                await create_playlist_from_liked(client)

            elif choice == "Log out":
                client.clear_tokens()
                log_info("Logged out of Spotify.")

            elif choice == "Exit" or choice is None:
                break
        except SpotifyError as e:
            log_error(f"{choice} failed: {e}")
            log_info(e.recovery_suggestion)


async def login(client: SpotifyClient) -> bool:
    """Run the browser half of the OAuth flow and exchange the returned code."""
    state = secrets.token_urlsafe(16).rstrip("=")
    url = client.generate_auth_url(state)

    print("\nOpen this URL to authorize access:\n")
    print(url + "\n")
    if await questionary.confirm("Open it in your browser now?", default=True).ask_async():
        webbrowser.open(url)

    redirect_url = await questionary.text("Paste the full URL you were redirected to:").ask_async()
    parsed = extract_code_from_redirect_url(redirect_url or "")

    if parsed.get("error"):
        log_error(f"Spotify authorization was denied: {parsed['error']}")
        return False
    if not parsed.get("code"):
        log_error("No authorization code found in that URL.")
        return False
    if parsed.get("state") != state:
        log_error("State mismatch in redirect URL; ignoring it.")
        return False

    await client.exchange_code_for_token(parsed["code"])
    log_success("Logged in to Spotify.")
    return True


def show_status(client: SpotifyClient) -> None:
    token = client.get_tokens()
    if token is None:
        log_info("Not logged in.")
        return

    remaining = int(token.expires_at - time.time())
    if remaining > 0:
        log_info(f"Logged in. Access token expires in {remaining // 60} min (scope: {token.scope or '-'}).")
    else:
        log_warning("Logged in, but the access token has expired; it will be refreshed on the next request.")


async def count_liked_songs(client: SpotifyClient) -> int:
    songs = await client.get_liked_songs()
    log_info(f"You have {len(songs)} liked songs.")
    return len(songs)


async def create_playlist_from_liked(client: SpotifyClient) -> None:
    name = await questionary.text("Playlist name:").ask_async()
    if not name:
        log_warning("Playlist name is required.")
        return
    description = await questionary.text("Description (optional):", default="").ask_async()
    public = await questionary.confirm("Make it public?", default=False).ask_async()

    songs = await client.get_liked_songs()
    uris = [s["uri"] for s in songs if s.get("uri")]
    if not uris:
        log_warning("No liked songs to add.")
        return

    playlist = await client.create_playlist(
        CreatePlaylistRequest(name=name, description=description or "", public=bool(public))
    )
    await client.add_tracks_to_playlist(playlist["id"], uris)

    url = (playlist.get("external_urls") or {}).get("spotify", "")
    log_success(f"Created '{name}' with {len(uris)} tracks {url}".rstrip())
