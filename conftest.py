pytest_plugins = ["htmock.pytest_plugin"]
