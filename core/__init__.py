# Core package - foundational components
#
# Modules:
# - config: Application settings and the immutable ServerConfig
# - logging: Structured logging
# - storage: Pluggable key/value storage plugins (memory, MongoDB)
