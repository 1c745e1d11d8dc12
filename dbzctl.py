#!/usr/bin/env python3
"""
CLI tool for the Debezium operator.

Provides a kubectl-like interface for managing connector records.
"""

import json
import os
import time

import click
import requests
import yaml
from tabulate import tabulate

API_BASE_URL = os.getenv("DBZCTL_API_URL", "http://localhost:8443/api/v1")


class OperatorCLI:
    """CLI client for the operator's HTTP API."""

    def __init__(self, base_url: str = API_BASE_URL):
        self.base_url = base_url.rstrip("/")

    def _make_request(self, method: str, endpoint: str, **kwargs):
        """Make an HTTP request; returns the decoded body or None on error."""
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.request(method, url, timeout=30, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            click.echo(f"Error: {e}", err=True)
            if getattr(e, "response", None) is not None:
                try:
                    click.echo(f"Detail: {e.response.json()}", err=True)
                except ValueError:
                    click.echo(f"Response: {e.response.text}", err=True)
            return None

    def exists(self, namespace: str, name: str) -> bool:
        url = f"{self.base_url}/namespaces/{namespace}/connectors/{name}"
        try:
            return requests.get(url, timeout=30).status_code == 200
        except requests.exceptions.RequestException:
            return False


def load_manifest(filename: str) -> dict:
    """Load a connector manifest from YAML or JSON."""
    with open(filename, "r") as f:
        if filename.endswith((".yaml", ".yml")):
            return yaml.safe_load(f)
        return json.load(f)


def connector_path(namespace: str, name: str) -> str:
    return f"/namespaces/{namespace}/connectors/{name}"


@click.group()
@click.option("--api-url", default=API_BASE_URL, show_default=True)
@click.pass_context
def cli(ctx, api_url):
    """Debezium operator CLI - kubectl-like interface for connector records"""
    ctx.obj = OperatorCLI(api_url)


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.pass_obj
def apply(client, filename):
    """Create or update a connector record from a YAML/JSON manifest"""
    manifest = load_manifest(filename)
    metadata = manifest.get("metadata") or {}
    name = metadata.get("name")
    namespace = metadata.get("namespace", "default")
    spec = manifest.get("spec") or {}

    if not name:
        raise click.UsageError("manifest must set metadata.name")

    if client.exists(namespace, name):
        result = client._make_request(
            "PUT", connector_path(namespace, name), json={"spec": spec}
        )
        verb = "configured"
    else:
        result = client._make_request(
            "POST",
            f"/namespaces/{namespace}/connectors",
            json={"name": name, "spec": spec},
        )
        verb = "created"

    if result:
        click.echo(f"debeziumconnector/{namespace}/{name} {verb}")
        click.echo(f"Generation: {result['generation']}")


@cli.command()
@click.option("--namespace", "-n", default=None, help="Limit to one namespace")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
@click.pass_obj
def get(client, namespace, output):
    """List connector records"""
    params = {"namespace": namespace} if namespace else {}
    result = client._make_request("GET", "/connectors", params=params)
    if result is None:
        return

    if output == "json":
        click.echo(json.dumps(result, indent=2))
        return

    headers = ["Namespace", "Name", "Connector", "Phase", "Generation", "Deleting"]
    rows = [
        [
            item["namespace"],
            item["name"],
            item["spec"]["config"].get("name", ""),
            item["status"]["phase"],
            f"{item['observed_generation']}/{item['generation']}",
            "yes" if item.get("deletion_timestamp") else "",
        ]
        for item in result
    ]
    click.echo(tabulate(rows, headers=headers, tablefmt="simple"))


@cli.command()
@click.argument("namespace")
@click.argument("name")
@click.option("--output", "-o", type=click.Choice(["json", "yaml"]), default="yaml")
@click.pass_obj
def describe(client, namespace, name, output):
    """Describe a connector record"""
    result = client._make_request("GET", connector_path(namespace, name))
    if result:
        if output == "yaml":
            click.echo(yaml.safe_dump(result, default_flow_style=False))
        else:
            click.echo(json.dumps(result, indent=2))


@cli.command()
@click.argument("namespace")
@click.argument("name")
@click.confirmation_option(prompt="Are you sure you want to delete this connector?")
@click.pass_obj
def delete(client, namespace, name):
    """Delete a connector record (removes the connector from Kafka Connect)"""
    result = client._make_request("DELETE", connector_path(namespace, name))
    if result:
        click.echo("Connector marked for deletion")


@cli.command()
@click.argument("namespace")
@click.argument("name")
@click.pass_obj
def reconcile(client, namespace, name):
    """Manually trigger reconciliation for a connector record"""
    result = client._make_request("POST", f"{connector_path(namespace, name)}/reconcile")
    if result:
        click.echo("Reconciliation triggered successfully")


@cli.command()
@click.argument("namespace")
@click.argument("name")
@click.option("--follow", "-f", is_flag=True, help="Follow status updates")
@click.option("--interval", "-i", default=5, help="Polling interval in seconds")
@click.pass_obj
def status(client, namespace, name, follow, interval):
    """Show the status of a connector record"""

    def show_status():
        result = client._make_request("GET", connector_path(namespace, name))
        if not result:
            return
        click.echo(f"Connector: {result['namespace']}/{result['name']}")
        click.echo(f"Phase: {result['status']['phase']}")
        click.echo(f"Generation: {result['generation']}")
        click.echo(f"Observed Generation: {result['observed_generation']}")
        click.echo(f"Last Reconcile: {result.get('last_reconcile_time') or 'Never'}")
        if result.get("last_error"):
            click.echo(f"Last Error: {result['last_error']}")

        conditions = result["status"].get("conditions") or []
        if conditions:
            rows = [
                [c["type"], c["status"], c["reason"], c.get("lastTransitionTime", "")]
                for c in conditions
            ]
            click.echo()
            click.echo(
                tabulate(rows, headers=["Type", "Status", "Reason", "Since"])
            )

    show_status()

    if follow:
        try:
            while True:
                time.sleep(interval)
                click.clear()
                show_status()
        except KeyboardInterrupt:
            click.echo("\nStopped following")


if __name__ == "__main__":
    cli()
