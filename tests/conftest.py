import pytest

from video_chat import create_app


class Outbox:
    """Stands in for the socket layer; records every outbound event."""

    def __init__(self):
        self.sent = []

    def __call__(self, event, to, *args):
        self.sent.append((to, event) + args)

    def to(self, connection_id):
        return [s[1:] for s in self.sent if s[0] == connection_id]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def app(tmp_path):
    return create_app({
        "TESTING": True,
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
    })


@pytest.fixture
def socketio(app):
    return app.extensions["socketio"]


@pytest.fixture
def state(app):
    return app.extensions["chat_state"]


@pytest.fixture
def connect(app, socketio):
    clients = []

    def _connect():
        client = socketio.test_client(app)
        assert client.is_connected()
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        if client.is_connected():
            client.disconnect()


@pytest.fixture
def sid_of(socketio):
    def _sid_of(client):
        return socketio.server.manager.sid_from_eio_sid(client.eio_sid, "/")
    return _sid_of


def received(client):
    """Events a test client got since the last call, minus online-count noise."""
    return [(e["name"], e["args"]) for e in client.get_received()
            if e["name"] != "updateOnlineUsers"]
