import typer
import requests
import os
import json
import datetime
import yaml
from rich.console import Console
from rich.table import Table
from rich.tree import Tree
from typing import Optional

app = typer.Typer(help="Bifrostctl: Command Line Interface for the Bifrost job gateway")
console = Console()

# Configuration
GATEWAY_URL = os.getenv("BIFROST_URL", "http://localhost:8080")
API_TOKEN = os.getenv("BIFROST_API_TOKEN", "default-insecure-token")
USER_NAME = os.getenv("BIFROST_USER", os.getenv("USER", ""))
ROLE = os.getenv("BIFROST_ROLE", "")

STATE_STYLES = {
    "WAITING": "yellow",
    "RUNNING": "cyan",
    "SUCCEEDED": "green",
    "STOPPED": "magenta",
    "FAILED": "red",
    "UNKNOWN": "dim",
}

@app.callback()
def main(
    url: str = typer.Option(None, envvar="BIFROST_URL", help="Gateway URL"),
    token: str = typer.Option(None, envvar="BIFROST_API_TOKEN", help="Authentication Token"),
    user: str = typer.Option(None, envvar="BIFROST_USER", help="User name sent as X-User-Name"),
    role: str = typer.Option(None, envvar="BIFROST_ROLE", help="Role sent as X-Role"),
):
    global GATEWAY_URL, API_TOKEN, USER_NAME, ROLE
    if url:
        GATEWAY_URL = url
    if token:
        API_TOKEN = token
    if user:
        USER_NAME = user
    if role:
        ROLE = role

def get_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"Authorization": f"Bearer {API_TOKEN}"})
    if USER_NAME:
        session.headers.update({"X-User-Name": USER_NAME})
    if ROLE:
        session.headers.update({"X-Role": ROLE})
    return session

def job_url(name: str, namespace: Optional[str] = None) -> str:
    if namespace:
        return f"{GATEWAY_URL}/api/v1/user/{namespace}/jobs/{name}"
    return f"{GATEWAY_URL}/api/v1/jobs/{name}"

def call(method: str, url: str, **kwargs):
    try:
        resp = get_session().request(method, url, timeout=30, **kwargs)
    except requests.exceptions.RequestException as e:
        console.print(f"[bold red]Error connecting to gateway at {GATEWAY_URL}:[/bold red] {e}")
        raise typer.Exit(code=1)
    if resp.status_code >= 400:
        try:
            body = resp.json()
            message = body.get("message") or body.get("detail") or resp.text
        except ValueError:
            message = resp.text
        console.print(f"[bold red]Gateway returned {resp.status_code}:[/bold red] {message}")
        raise typer.Exit(code=1)
    return resp.json() if resp.content else None

def format_time(millis: Optional[int]) -> str:
    if not millis:
        return "-"
    return datetime.datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M:%S")

def styled_state(state: str) -> str:
    style = STATE_STYLES.get(state, "white")
    return f"[{style}]{state}[/{style}]"

@app.command()
def jobs(username: Optional[str] = typer.Option(None, help="Only list jobs of this user")):
    """List jobs, newest first"""
    params = {"username": username} if username else None
    summaries = call("GET", f"{GATEWAY_URL}/api/v1/jobs", params=params)

    table = Table(title="Jobs")
    table.add_column("Name", style="cyan")
    table.add_column("User")
    table.add_column("State")
    table.add_column("Retries", justify="right")
    table.add_column("Created", style="magenta")
    table.add_column("Virtual Cluster")

    for job in summaries:
        name = job["name"]
        if job.get("namespace"):
            name = f"{job['namespace']}/{name}"
        table.add_row(
            name,
            job.get("username") or "-",
            styled_state(job["state"]),
            str(job.get("retries", 0)),
            format_time(job.get("createdTime")),
            job.get("virtualCluster") or "-",
        )

    console.print(table)

@app.command()
def status(name: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Show job status, task roles and exit diagnosis"""
    detail = call("GET", job_url(name, namespace))
    job = detail["jobStatus"]

    tree = Tree(f"[bold blue]{job['name']}[/bold blue] {styled_state(job['state'])} ({job.get('subState') or '-'})")
    tree.add(f"User: {job.get('username')}  Virtual cluster: {job.get('virtualCluster') or '-'}")
    retries = job.get("retryDetails", {})
    tree.add(
        f"Retries: {job.get('retries', 0)} (user {retries.get('user', 0)}, "
        f"platform {retries.get('platform', 0)}, resource {retries.get('resource', 0)})"
    )
    tree.add(f"Created: {format_time(job.get('createdTime'))}  Completed: {format_time(job.get('completedTime'))}")
    if job.get("appId"):
        tree.add(f"Application: {job['appId']} {job.get('appTrackingUrl') or ''}")

    roles_branch = tree.add("Task roles")
    for role_name, role in detail.get("taskRoles", {}).items():
        role_branch = roles_branch.add(f"[bold]{role_name}[/bold]")
        for task in role["taskStatuses"]:
            ports = ", ".join(f"{k}:{v}" for k, v in task.get("containerPorts", {}).items())
            role_branch.add(f"#{task['taskIndex']} {styled_state(task['taskState'])} {task.get('containerIp') or ''} {ports}")

    diagnosis = job.get("exitDiagnosis")
    if diagnosis:
        spec = diagnosis.get("spec") or {}
        exit_branch = tree.add(f"[bold red]Exit {diagnosis.get('code')}[/bold red] {spec.get('phrase', '')}")
        if spec.get("reason"):
            exit_branch.add(f"Reason: {spec['reason']}")
        for solution in spec.get("solution", []):
            exit_branch.add(f"Solution: {solution}")
        messages = diagnosis.get("messages") or {}
        if messages.get("runtime"):
            exit_branch.add(f"Runtime: {json.dumps(messages['runtime'])}")
        if messages.get("container"):
            exit_branch.add(f"Container stderr:\n{messages['container']}")
        if messages.get("launcher"):
            exit_branch.add(f"Launcher: {messages['launcher']}")

    console.print(tree)

@app.command()
def submit(file: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Submit a job spec from a YAML or JSON file"""
    if not os.path.exists(file):
        console.print(f"[bold red]File {file} not found![/bold red]")
        raise typer.Exit(code=1)

    with open(file, "r") as f:
        spec = yaml.safe_load(f)
    if not isinstance(spec, dict) or not spec.get("jobName"):
        console.print(f"[bold red]{file} is not a job spec (missing jobName)[/bold red]")
        raise typer.Exit(code=1)
    if USER_NAME and not spec.get("userName"):
        spec["userName"] = USER_NAME

    console.print(f"Submitting job [bold]{spec['jobName']}[/bold] from {file}...")
    result = call("PUT", job_url(spec["jobName"], namespace), json=spec)
    console.print(f"[bold green]{result['message']}[/bold green]")

def set_execution_type(name: str, namespace: Optional[str], value: str):
    result = call("PUT", f"{job_url(name, namespace)}/executionType", json={"value": value})
    console.print(f"[bold green]{result['message']}[/bold green]")

@app.command()
def stop(name: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Stop a job"""
    set_execution_type(name, namespace, "STOP")

@app.command()
def resume(name: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Start a stopped job again"""
    set_execution_type(name, namespace, "START")

@app.command()
def delete(name: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Delete a job"""
    result = call("DELETE", job_url(name, namespace))
    console.print(f"[bold green]{result['message']}[/bold green]")

@app.command()
def config(name: str, namespace: Optional[str] = typer.Option(None, help="Job namespace")):
    """Print the job config that was submitted"""
    console.print_json(data=call("GET", f"{job_url(name, namespace)}/config"))

if __name__ == "__main__":
    app()
