NS_MUC = "http://jabber.org/protocol/muc"
NS_MUC_USER = "http://jabber.org/protocol/muc#user"
NS_REFERENCE = "urn:xmpp:reference:0"
NS_FASTEN = "urn:xmpp:fasten:0"
NS_MODERATE = "urn:xmpp:message-moderate:0"
NS_RETRACT = "urn:xmpp:message-retract:0"

STATUS_SELF_PRESENCE = "110"
STATUS_NICK_CHANGE = "303"

MENTION_PLACEHOLDER = "{{NICK}}"
COMMAND_MARKER = "!"

CLIENT_DEFAULT_PORT = 5222
COMPONENT_DEFAULT_PORT = 5347
CONNECT_TIMEOUT = 30
CONNECT_MAX_RETRIES = 3

GREETER_CACHE_MAX = 5000
QUOTES_DEFAULT_DELAY_MS = 10 * 1000
NO_DUPLICATE_DEFAULT_DELAY = 60
NO_DUPLICATE_PRUNE_INTERVAL = 5 * 60

CONF_RELOAD_DEBOUNCE_SECONDS = 0.1
