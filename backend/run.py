import logging

from rayguess import create_app, socketio

app = create_app()

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
