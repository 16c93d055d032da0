import logging

from flatfile_bridge import create_app

app = create_app()

logging.basicConfig(
    level=app.config['LOG_LEVEL'],
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)


if __name__ == '__main__':
    # Listens on all interfaces so the wizard can reach it from the local network
    app.run(host=app.config['HOST'], port=app.config['PORT'], debug=app.config['DEBUG'])
