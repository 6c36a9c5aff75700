class ConfigKeys:
    DEBUG = "debug"
    CONNECTION_JID = "connection.jid"
    CONNECTION_PASSWORD = "connection.password"
    CONNECTION_HOST = "connection.host"
    CONNECTION_PORT = "connection.port"
    LOG_PATH = "log.path"
    LOG_LEVEL = "log.level"
