"""Configuration files rendered for the remote host."""

from __future__ import annotations

from .config import ProvisioningConfig
from .paths import PROCESS_NAME, DeployLayout


def nginx_site(config: ProvisioningConfig) -> str:
    layout = DeployLayout(config.deploy_path, config.app_name)
    return f"""\
server {{
    listen 80;
    server_name {config.domain};

    root {layout.public_dir};

    location / {{
        try_files $uri @{PROCESS_NAME};
    }}

    location @{PROCESS_NAME} {{
        proxy_pass http://unix:{layout.socket_path};
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header Host $http_host;
        proxy_redirect off;
    }}

    error_page 500 502 503 504 /500.html;
}}
"""


def systemd_unit(config: ProvisioningConfig) -> str:
    layout = DeployLayout(config.deploy_path, config.app_name)
    return f"""\
[Unit]
Description=Puma HTTP Server for {config.app_name}
After=network.target

[Service]
Type=simple
User={config.deploy_user}
WorkingDirectory={layout.current_dir}
Environment="RAILS_ENV=production"
Environment="RACK_ENV=production"
ExecStart={layout.launcher}
Restart=always

[Install]
WantedBy=multi-user.target
"""


def puma_config(config: ProvisioningConfig) -> str:
    """Puma settings; paths are resolved by Ruby from ``shared_dir``."""
    layout = DeployLayout(config.deploy_path, config.app_name)
    return f"""\
threads 0,16
workers 1
app_dir = "{layout.current_dir}"
shared_dir = "{layout.shared_dir}"
bind "unix://#{{shared_dir}}/tmp/sockets/{PROCESS_NAME}.sock"
pidfile "#{{shared_dir}}/tmp/pids/{PROCESS_NAME}.pid"
stdout_redirect "#{{shared_dir}}/log/{PROCESS_NAME}.stdout.log", "#{{shared_dir}}/log/{PROCESS_NAME}.stderr.log", true
"""


def launcher_script(config: ProvisioningConfig) -> str:
    layout = DeployLayout(config.deploy_path, config.app_name)
    return f"""\
#!/bin/bash
export RBENV_ROOT="$HOME/.rbenv"
export PATH="$RBENV_ROOT/bin:$PATH"
eval "$(rbenv init -)"
cd {layout.current_dir} || exit 1
exec $RBENV_ROOT/shims/bundle exec puma -C {layout.process_config}
"""
