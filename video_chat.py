import logging
from flask import Flask, jsonify, render_template_string, request
from flask_socketio import SocketIO

from chat_settings import Config
from chat_state import ChatState
from matchmaker import Matchmaker
from relay import RELAY_EVENTS, RelayDispatcher
from uploads import cleanup_user_files, uploads_bp

# --- CONFIGURATION ---
# Configure logging for production-grade output
logging.basicConfig(level=Config.LOG_LEVEL, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- FRONTEND TEMPLATE (HTML/CSS/JS) ---
HTML_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Random Meet</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <script src="https://cdnjs.cloudflare.com/ajax/libs/socket.io/4.0.1/socket.io.js"></script>
    <style>video { background-color: #0f172a; } video.mirrored { transform: scaleX(-1); }</style>
</head>
<body class="bg-slate-950 text-slate-200 h-screen flex flex-col">
    <header class="h-14 flex items-center justify-between px-6 border-b border-slate-800">
        <h1 class="font-bold">Random<span class="text-indigo-500">Meet</span></h1>
        <span id="userCount" class="text-xs text-slate-400">0 online</span>
        <span id="status" class="text-xs font-mono uppercase text-slate-500">Idle</span>
    </header>
    <main class="flex-1 flex flex-col md:flex-row overflow-hidden">
        <div class="flex-1 relative p-4">
            <video id="remoteVideo" autoplay playsinline class="w-full h-full object-contain rounded-xl"></video>
            <video id="localVideo" autoplay playsinline muted class="mirrored absolute bottom-6 right-6 w-40 rounded-lg"></video>
        </div>
        <div class="w-full md:w-96 flex flex-col border-l border-slate-800">
            <div id="chatLog" class="flex-1 overflow-y-auto p-4 space-y-2 text-sm"></div>
            <div id="typingIndicator" class="h-5 px-4 text-xs italic text-indigo-400 hidden">Stranger is typing...</div>
            <div class="p-4 space-y-3">
                <input id="nameInput" placeholder="Display name (optional)" class="w-full bg-slate-900 rounded-lg p-2 border border-slate-700">
                <div class="flex gap-2">
                    <button id="nextBtn" class="flex-1 bg-slate-100 text-slate-900 font-bold py-2 rounded-lg">Next Stranger</button>
                    <button id="toggleCamBtn" class="bg-slate-800 px-3 rounded-lg">Cam</button>
                    <button id="toggleMicBtn" class="bg-slate-800 px-3 rounded-lg">Mic</button>
                </div>
                <form id="chatForm"><input id="msgInput" disabled placeholder="Type a message..." class="w-full bg-slate-900 rounded-lg p-2 border border-slate-700"></form>
            </div>
        </div>
    </main>
    <script>
        const socket = io();
        const $ = (id) => document.getElementById(id);
        const peerConnectionConfig = {'iceServers': [{'urls': 'stun:stun.l.google.com:19302'}]};
        let localStream, peerConnection, partnerId = null, named = false, typingTimeout = null;

        function log(text, cls) {
            const div = document.createElement('div');
            div.className = cls || 'text-center text-xs text-slate-500';
            div.textContent = text;
            $('chatLog').appendChild(div);
            $('chatLog').scrollTop = $('chatLog').scrollHeight;
        }

        async function startCamera() {
            try {
                if (!localStream) {
                    localStream = await navigator.mediaDevices.getUserMedia({ video: { width: 640 }, audio: true });
                    $('localVideo').srcObject = localStream;
                }
            } catch (err) { log('Camera unavailable, text chat only.'); }
        }

        function closeConnection() {
            if (peerConnection) { peerConnection.close(); peerConnection = null; }
            $('remoteVideo').srcObject = null;
            partnerId = null;
            $('msgInput').disabled = true;
        }

        function startWebRTC(isOfferer) {
            peerConnection = new RTCPeerConnection(peerConnectionConfig);
            if (localStream) localStream.getTracks().forEach(t => peerConnection.addTrack(t, localStream));
            peerConnection.ontrack = (e) => { $('remoteVideo').srcObject = e.streams[0]; };
            peerConnection.onicecandidate = (e) => { if (e.candidate) socket.emit('ice-candidate', e.candidate); };
            if (isOfferer) {
                peerConnection.createOffer()
                    .then(o => peerConnection.setLocalDescription(o))
                    .then(() => socket.emit('offer', peerConnection.localDescription));
            }
        }

        socket.on('updateOnlineUsers', (n) => { $('userCount').innerText = n + ' online'; });
        socket.on('waiting', () => { $('status').innerText = 'Searching'; log('Searching for a partner...'); });
        socket.on('chatStarted', (data) => {
            closeConnection();
            partnerId = data.partnerId;
            $('status').innerText = 'Connected';
            $('msgInput').disabled = false;
            log('You are now chatting with ' + data.partnerUsername + '.');
            startWebRTC(socket.id < partnerId);
        });
        socket.on('chatEnded', () => { closeConnection(); $('status').innerText = 'Idle'; log('Chat ended.'); });
        socket.on('chatMessage', (text) => { $('typingIndicator').classList.add('hidden'); log('Stranger: ' + text, 'text-slate-200'); });
        socket.on('typing', () => {
            $('typingIndicator').classList.remove('hidden');
            clearTimeout(typingTimeout);
            typingTimeout = setTimeout(() => $('typingIndicator').classList.add('hidden'), 1000);
        });
        socket.on('offer', async (sdp) => {
            if (!peerConnection) return;
            await peerConnection.setRemoteDescription(new RTCSessionDescription(sdp));
            const answer = await peerConnection.createAnswer();
            await peerConnection.setLocalDescription(answer);
            socket.emit('answer', answer);
        });
        socket.on('answer', (sdp) => { if (peerConnection) peerConnection.setRemoteDescription(new RTCSessionDescription(sdp)); });
        socket.on('ice-candidate', (c) => { if (peerConnection) peerConnection.addIceCandidate(new RTCIceCandidate(c)); });
        socket.on('partner-video-toggle', (on) => log(on ? 'Stranger turned the camera on.' : 'Stranger turned the camera off.'));
        socket.on('partner-audio-toggle', (on) => log(on ? 'Stranger unmuted.' : 'Stranger muted.'));

        $('nextBtn').addEventListener('click', async () => {
            await startCamera();
            const name = $('nameInput').value.trim();
            if (name && !named) { socket.emit('setUsername', name); named = true; $('nameInput').disabled = true; }
            socket.emit(partnerId ? 'endChat' : 'startChat');
        });
        $('chatForm').addEventListener('submit', (e) => {
            e.preventDefault();
            const msg = $('msgInput').value.trim();
            if (msg && partnerId) { socket.emit('chatMessage', msg); log('You: ' + msg, 'text-right text-indigo-300'); $('msgInput').value = ''; }
        });
        $('msgInput').addEventListener('input', () => { if (partnerId) socket.emit('typing'); });
        for (const [btn, kind, event] of [['toggleCamBtn', 'video', 'toggle-video'], ['toggleMicBtn', 'audio', 'toggle-audio']]) {
            $(btn).addEventListener('click', () => {
                if (!localStream) return;
                const track = kind === 'video' ? localStream.getVideoTracks()[0] : localStream.getAudioTracks()[0];
                if (!track) return;
                track.enabled = !track.enabled;
                socket.emit(event, track.enabled);
            });
        }
    </script>
</body>
</html>
"""


def create_app(config=None):
    """Build the Flask app, its SocketIO server and a fresh ChatState.

    Every app owns its own state, so tests can run isolated instances side
    by side. The SocketIO instance is reachable as ``app.extensions['socketio']``.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    socketio = SocketIO(app, cors_allowed_origins=app.config['CORS_ALLOWED_ORIGINS'])

    state = ChatState(app.config['ACTIVITY_LOG_SIZE'])
    app.extensions['chat_state'] = state

    def send(event, to, *args):
        socketio.emit(event, *args, to=to)

    matchmaker = Matchmaker(state, send)
    dispatcher = RelayDispatcher(state.sessions, send)
    app.extensions['matchmaker'] = matchmaker

    app.register_blueprint(uploads_bp)

    # --- HTTP ROUTES ---
    @app.route('/')
    @app.route('/home')
    def index():
        return render_template_string(HTML_TEMPLATE)

    @app.route('/check-username', methods=['POST'])
    def check_username():
        data = request.get_json(silent=True) or {}
        username = data.get('username')
        if not isinstance(username, str) or not username.strip():
            return jsonify({'error': 'username is required'}), 400
        with state.lock:
            available = state.names.is_available(username)
        return jsonify({'available': available})

    @app.route('/user-activity')
    def user_activity():
        with state.lock:
            return jsonify(state.connections.activity())

    # --- SOCKET EVENTS ---
    def broadcast_online_count():
        socketio.emit('updateOnlineUsers', state.online_count)

    @socketio.on('connect')
    def on_connect(auth=None):
        with state.lock:
            state.connections.register(request.sid)
            logger.info(f"User connected: {request.sid}")
            broadcast_online_count()

    @socketio.on('disconnect')
    def on_disconnect(reason=None):
        sid = request.sid
        with state.lock:
            matchmaker.drop(sid)
            name = state.connections.unregister(sid)
            state.names.release(name)
            logger.info(f"User disconnected: {sid}")
            broadcast_online_count()
        cleanup_user_files(state, sid)

    @socketio.on('startChat')
    def on_start_chat():
        with state.lock:
            matchmaker.start(request.sid)

    @socketio.on('endChat')
    def on_end_chat():
        with state.lock:
            matchmaker.end(request.sid)
        cleanup_user_files(state, request.sid)

    @socketio.on('setUsername')
    def on_set_username(name):
        sid = request.sid
        if not isinstance(name, str) or not name.strip():
            logger.warning(f"Ignoring blank username from {sid}")
            return
        name = name.strip()
        with state.lock:
            conn = state.connections.get(sid)
            if conn is None:
                return
            if conn.username:
                logger.warning(f"{sid} already named {conn.username!r}, ignoring {name!r}")
                return
            if not state.names.claim(name):
                logger.warning(f"Username {name!r} is taken, ignoring request from {sid}")
                return
            state.connections.set_display_name(sid, name)

    def relay_handler(event):
        def handler(*payload):
            with state.lock:
                dispatcher.relay(request.sid, event, *payload)
        handler.__name__ = 'relay_' + event.replace('-', '_')
        return handler

    for event in RELAY_EVENTS:
        socketio.on_event(event, relay_handler(event))

    return app


app = create_app()
socketio = app.extensions['socketio']


def main():
    host, port = app.config['HOST'], app.config['PORT']
    logger.info(f"Server is running at http://{host}:{port}")
    socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=app.config['ALLOW_UNSAFE_WERKZEUG'])


if __name__ == '__main__':
    main()
