"""
LiveSeries torrent service - Flask application
"""
from typing import Optional, Tuple

from flask import Blueprint, Flask, current_app, jsonify, request, send_file
from flask_sock import Sock
from werkzeug.exceptions import HTTPException

from config.settings import settings
from indexer.base import IndexerError
from models.episode import Episode
from services.container import LiveSeriesServices
from services.coordinator import AcquireStatus, ReleaseStatus, ResolutionState
from services.downloads import DownloadsDirectoryError
from services.notifications import PollChannel
from services.subtitles import SubtitleStatus, SUBTITLES_DEFAULT_LANGUAGE
from torrents.client import DaemonResponseError, TorrentClientError
from utils.logging import setup_logging, get_logger

logger = get_logger(__name__)

VERSION = '1.0.0'

NO_TORRENTS_MESSAGE = "No torrents found for this episode."
SEARCH_ERROR_MESSAGE = "Could not obtain torrent data."

SORTABLE_FIELDS = {
    'link': 'link',
    'name': 'name',
    'age': 'age',
    'type': 'type',
    'files': 'files',
    'size': 'size',
    'sizeHuman': 'size_human',
    'seeders': 'seeders',
    'leechers': 'leechers',
}
NUMERIC_SORT_FIELDS = {'files', 'size', 'seeders', 'leechers'}
SORT_DIRECTIONS = {'asc': False, 'ascending': False, 'desc': True, 'descending': True}

ACQUIRE_STATUS_CODES = {
    AcquireStatus.STARTED: 200,
    AcquireStatus.ALREADY_IN_CLIENT: 200,
    AcquireStatus.ALREADY_DOWNLOADED: 409,
    AcquireStatus.NO_RESULTS: 404,
    AcquireStatus.INSUFFICIENT_SPACE: 507,
    AcquireStatus.UNAVAILABLE: 503,
    AcquireStatus.DAEMON_ERROR: 502,
}
RELEASE_STATUS_CODES = {
    ReleaseStatus.RELEASED: 200,
    ReleaseStatus.NOT_FOUND: 404,
    ReleaseStatus.UNAVAILABLE: 503,
    ReleaseStatus.LEDGER_ERROR: 500,
    ReleaseStatus.TORRENT_REMOVAL_FAILED: 500,
    ReleaseStatus.FILE_REMOVAL_FAILED: 500,
}

liveseries = Blueprint('liveseries', __name__)
sock = Sock()


def _services() -> LiveSeriesServices:
    return current_app.extensions['liveseries']


def _error(message: str, status: int):
    return jsonify({"message": message}), status


def validate_natural_number(value, name: str) -> Optional[str]:
    """Return an error message unless the value is a positive integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value)
    else:
        number = 0
    if number < 1:
        return f"Invalid {name} '{value}': must be a positive integer."
    return None


def parse_episode(show_name: str, season: str, episode: str) -> Tuple[Optional[Episode], Optional[str]]:
    error = validate_natural_number(season, 'season') or validate_natural_number(episode, 'episode')
    if error:
        return None, error
    return Episode(show_name, int(season), int(episode)), None


def _parse_bool(value: Optional[str]) -> bool:
    return (value or '').lower() in ('1', 'true', 'yes')


def _cached(response):
    response.cache_control.public = True
    response.cache_control.max_age = _services().settings.static_cache_duration
    return response


@liveseries.route('/health')
def health():
    """Health check endpoint with torrent client status."""
    services = _services()
    return jsonify({
        "status": "ok",
        "service": "LiveSeries",
        "version": VERSION,
        "torrentClient": "configured" if services.client.configured else "unconfigured",
        "liveConnections": services.hub.connection_count,
    })


@liveseries.route('/liveseries/downloaded-episodes')
def get_downloaded_episodes():
    """Get the state of every episode torrent."""
    infos = _services().coordinator.list_torrent_infos()
    return jsonify([info.to_dict() for info in infos])


@liveseries.route('/liveseries/downloaded-episodes', methods=['POST'])
def start_download():
    """Start downloading an episode."""
    data = request.get_json(silent=True) or {}
    show_name = data.get('showName')
    error = (
        validate_natural_number(data.get('showId'), 'showId')
        or validate_natural_number(data.get('season'), 'season')
        or validate_natural_number(data.get('episode'), 'episode')
    )
    if not error and (not isinstance(show_name, str) or not show_name.strip()):
        error = "Request body is missing property `showName`."
    if error:
        return _error(error, 400)

    episode = Episode(show_name, int(data['season']), int(data['episode']))
    outcome = _services().coordinator.acquire(int(data['showId']), episode)
    status_code = ACQUIRE_STATUS_CODES[outcome.status]
    if not outcome.succeeded:
        return _error(outcome.message, status_code)
    return jsonify({
        "status": outcome.status.value,
        "entry": outcome.entry,
        "torrent": outcome.torrent.to_dict() if outcome.torrent else None,
    }), status_code


@liveseries.route('/liveseries/downloaded-episodes/<show_name>/<season>/<episode>', methods=['DELETE'])
def delete_download(show_name, season, episode):
    """Remove an episode's ledger entry, torrent and files."""
    parsed, error = parse_episode(show_name, season, episode)
    if error:
        return _error(error, 400)
    outcome = _services().coordinator.release(parsed)
    status_code = RELEASE_STATUS_CODES[outcome.status]
    if outcome.status != ReleaseStatus.RELEASED:
        return _error(outcome.message, status_code)
    return jsonify({"status": outcome.status.value}), status_code


@liveseries.route('/liveseries/video/<show_name>/<season>/<episode>')
def get_video(show_name, season, episode):
    """Stream a downloaded episode."""
    parsed, error = parse_episode(show_name, season, episode)
    if error:
        return _error(error, 400)
    resolution = _services().coordinator.locate_video(parsed, _parse_bool(request.args.get('allow_non_mp4')))
    if resolution.state == ResolutionState.QUERY_FAILED:
        return _error(resolution.message, 503)
    if not resolution.found:
        return _error(resolution.message, 404)
    return _cached(send_file(resolution.value, conditional=True))


@liveseries.route('/liveseries/subtitles/<show_name>/<season>/<episode>')
def get_subtitles(show_name, season, episode):
    """Serve subtitles for an episode, downloading them when not cached."""
    parsed, error = parse_episode(show_name, season, episode)
    if error:
        return _error(error, 400)
    services = _services()

    def on_not_found(sanitized: Episode) -> Optional[str]:
        path = services.downloads.find_episode(sanitized)
        return services.downloads.relative_name(path) if path else None

    resolution = services.coordinator.resolve(parsed, lambda torrent, sanitized: torrent.name, on_not_found)
    if resolution.state == ResolutionState.QUERY_FAILED:
        return _error(resolution.message, 503)
    if not resolution.found:
        return _error(resolution.message, 404)

    language = request.args.get('lang') or SUBTITLES_DEFAULT_LANGUAGE
    outcome = services.subtitles.get_subtitles(resolution.episode, resolution.value, language)
    if outcome.status != SubtitleStatus.OK:
        return _error(outcome.message, outcome.http_status)
    return _cached(send_file(outcome.path, mimetype='text/vtt'))


@liveseries.route('/torrents/<show_name>/<season>/<episode>')
def search_torrents(show_name, season, episode):
    """Search the torrent indexer for an episode."""
    parsed, error = parse_episode(show_name, season, episode)
    if error:
        return _error(error, 400)
    sort_by = request.args.get('sort_by')
    if sort_by and sort_by not in SORTABLE_FIELDS:
        return _error(f"Invalid sort_by value '{sort_by}'.", 400)
    sort_direction = request.args.get('sort_direction', 'desc')
    if sort_direction not in SORT_DIRECTIONS:
        return _error(f"Invalid sort_direction value '{sort_direction}'.", 400)

    indexer = _services().indexer
    try:
        results = indexer.search(parsed)
    except IndexerError as e:
        logger.error(f"Error searching for episode: {e}")
        return _error(SEARCH_ERROR_MESSAGE, 500)
    if not results:
        return _error(NO_TORRENTS_MESSAGE, 404)

    if request.args.get('select') == 'top_result':
        top_result = indexer.select_top_result(results)
        if top_result is None:
            return _error(NO_TORRENTS_MESSAGE, 404)
        return jsonify(top_result.to_dict())

    if sort_by:
        attribute = SORTABLE_FIELDS[sort_by]
        empty = 0 if attribute in NUMERIC_SORT_FIELDS else ''
        results = sorted(
            results,
            key=lambda result: getattr(result, attribute) or empty,
            reverse=SORT_DIRECTIONS[sort_direction]
        )
    return jsonify([result.to_dict() for result in results])


def serve_downloaded_episodes(ws) -> None:
    """Push torrent state to a websocket client which polls for it."""
    services = _services()
    if not services.client.configured:
        logger.error("Websocket connection established without active torrent client.")
        return
    channel = PollChannel(
        services.coordinator.list_torrent_infos,
        services.hub,
        ws.send,
        interval=services.settings.ws_message_interval,
        is_connected=lambda: ws.connected
    )
    channel.serve(ws.receive)


@sock.route('/liveseries/downloaded-episodes/ws')
def downloaded_episodes_ws(ws):
    serve_downloaded_episodes(ws)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DaemonResponseError)
    def daemon_response_error(e):
        logger.error(f"Torrent daemon error: {e}")
        return _error("The torrent client returned an error.", 502)

    @app.errorhandler(TorrentClientError)
    def torrent_client_error(e):
        logger.error(f"Torrent client error: {e}")
        return _error("The torrent client is unavailable. Try again later.", 503)

    @app.errorhandler(DownloadsDirectoryError)
    def downloads_directory_error(e):
        logger.error(f"Downloads directory error: {e}")
        return _error("Could not load the downloaded episodes.", 500)

    @app.errorhandler(Exception)
    def unexpected_error(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception(f"Unhandled error while serving {request.path}")
        return _error("Internal server error", 500)


def create_app(services: Optional[LiveSeriesServices] = None) -> Flask:
    """Build the application around explicitly constructed services."""
    app = Flask(__name__)
    if services is None:
        services = LiveSeriesServices.from_settings(settings)
        services.start()
    app.extensions['liveseries'] = services
    app.register_blueprint(liveseries)
    sock.init_app(app)
    register_error_handlers(app)
    return app


if __name__ == '__main__':
    setup_logging(settings.log_level)
    logger.info(f"Starting LiveSeries torrent service v{VERSION}")
    create_app().run(
        host='0.0.0.0',
        port=settings.port,
        debug=False,
        threaded=True
    )
