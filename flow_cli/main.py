from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from pathlib import Path
import os

import typer
from rich.console import Console
from rich.markdown import Markdown
import httpx


app = typer.Typer()
console = Console()
trace_console = Console(stderr=True)

LATE_REASON = "Running 30 mins late"
DIVERGED_REASON = "Diverged from path"
TYPE_ICONS = {
    "FOOD": "🍜",
    "SIGHTSEEING": "📸",
    "ACTIVITY": "🎟️",
    "TRANSIT": "🚇",
    "COMMITMENT": "📌",
}


class ApiError(Exception):
    pass


class FlowClient:
    """Thin wrapper over the planner service endpoints."""

    def __init__(self, base_url: str, api_key: Optional[str], timeout: float = 120.0) -> None:
        headers = {"X-API-KEY": api_key} if api_key else {}
        self._http = httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def _call(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise ApiError(f"Request failed: {e}") from e
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail")
            except ValueError:
                detail = resp.text
            if isinstance(detail, dict):
                print_trace(detail.get("trace") or [])
                detail = f"{detail.get('message')} ({detail.get('error')})"
            raise ApiError(f"{resp.status_code}: {detail}")
        return resp.json()

    def create_session(self, preferences: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("POST", "/sessions", json=preferences)

    def add_commitment(self, session_id: str, commitment: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("POST", f"/sessions/{session_id}/commitments", json=commitment)

    def generate(self, session_id: str) -> Dict[str, Any]:
        return self._call("POST", f"/sessions/{session_id}/itinerary")

    def recalculate(self, session_id: str, reason: str) -> Dict[str, Any]:
        body = {"reason": reason, "currentTime": datetime.now().strftime("%H:%M")}
        return self._call("POST", f"/sessions/{session_id}/itinerary/recalculate", json=body)

    def confirm(self, session_id: str) -> Dict[str, Any]:
        return self._call("POST", f"/sessions/{session_id}/itinerary/confirm")

    def discard(self, session_id: str) -> Dict[str, Any]:
        return self._call("DELETE", f"/sessions/{session_id}/itinerary/pending")

    def reset(self, session_id: str) -> Dict[str, Any]:
        return self._call("DELETE", f"/sessions/{session_id}/itinerary")

    def resolve(self, query: str, hint: Optional[str]) -> Dict[str, Any]:
        return self._call("POST", "/locations/resolve", json={"query": query, "contextHint": hint})


def print_trace(entries: List[Dict[str, Any]]) -> None:
    for tr in entries:
        dur = tr.get("duration_ms")
        line = f"[trace] {tr.get('service')}:{tr.get('fn')} -> {tr.get('status')}"
        if dur is not None:
            line += f" ({float(dur):.2f} ms)"
        trace_console.print(line, style="dim")


def parse_commitment(raw: str) -> Dict[str, Any]:
    """``10:00-11:00@Blue Bottle Coffee[#note]``; the end time may be omitted."""
    if "@" not in raw:
        raise typer.BadParameter(f"Expected START[-END]@LOCATION, got '{raw}'")
    window, _, place = raw.partition("@")
    description = None
    if "#" in place:
        place, _, description = place.partition("#")
    start, _, end = window.partition("-")
    body: Dict[str, Any] = {"startTime": start.strip(), "location": place.strip()}
    if end.strip():
        body["endTime"] = end.strip()
    if description and description.strip():
        body["description"] = description.strip()
    return body


def render_markdown(plan: Dict[str, Any], links: List[str]) -> str:
    stops = plan.get("stops") or []
    md = f"## {plan.get('title', 'Your day')}\n\n"
    if plan.get("summary"):
        md += f"{plan['summary']}\n\n"
    md += (
        f"**Authenticity:** {plan.get('totalAuthenticityScore', 0)}/100 · "
        f"**Visual:** {plan.get('totalInstagramScore', 0)}/100\n\n"
    )
    for i, stop in enumerate(stops):
        icon = TYPE_ICONS.get(stop.get("type") or "", "•")
        fixed = " 🔒" if stop.get("isFixed") else ""
        md += f"### {stop['startTime']}-{stop['endTime']} {icon} {stop['name']}{fixed}\n\n"
        if stop.get("description"):
            md += f"{stop['description']}\n\n"
        address = (stop.get("location") or {}).get("address")
        if address:
            md += f"- Address: {address}\n"
        md += f"- Cost: {stop.get('estimatedCost', '?')} · Authenticity {stop.get('authenticityScore')}/10 · Visual {stop.get('instagramScore')}/10\n"
        for key, label in (
            ("whyThisSpot", "Why"),
            ("localTip", "Local tip"),
            ("bestPhotoSpot", "Photo spot"),
            ("crowdLevel", "Crowds"),
            ("dietaryNotes", "Dietary"),
        ):
            if stop.get(key):
                md += f"- {label}: {stop[key]}\n"
        if i < len(links):
            md += f"- [Map]({links[i]})\n"
        leg = stop.get("travelToNext")
        if leg and i < len(stops) - 1:
            md += f"\n> {leg.get('mode')} · {leg.get('duration')} to next stop\n"
        md += "\n"
    return md


def show(body: Dict[str, Any], output_file: Optional[Path] = None) -> None:
    print_trace(body.get("trace") or [])
    pending = body.get("pending")
    if pending:
        dropped = ", ".join(
            f"{c['location']} ({c['startTime']}-{c['endTime']})" for c in pending.get("droppedCommitments", [])
        )
        console.print(Markdown(render_markdown(pending["itinerary"], body.get("links") or [])))
        console.print(
            f"This plan drops fixed commitments: {dropped}. Type 'confirm' to accept or 'discard' to keep the current plan.",
            style="bold yellow",
        )
        return
    plan = body.get("itinerary")
    if not plan:
        console.print("No itinerary yet.", style="yellow")
        return
    md = render_markdown(plan, body.get("links") or [])
    console.print(Markdown(md))
    if output_file:
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            with output_file.open("a", encoding="utf-8") as f:
                if f.tell() > 0:
                    f.write("\n\n---\n\n")
                f.write(md)
            console.print(f"\nSaved itinerary to {output_file}", style="green")
        except OSError as e:
            trace_console.print(f"Failed to write file: {e}", style="bold red")


def _client() -> FlowClient:
    return FlowClient(os.getenv("FLOW_API_URL", "http://localhost:3001"), os.getenv("FLOW_API_KEY"))


def interactive_loop(client: FlowClient, session_id: str, output_file: Optional[Path]) -> None:
    while True:
        try:
            user_in = typer.prompt(
                "late | diverged | swap <stop> | confirm | discard | reset | exit"
            )
        except (EOFError, KeyboardInterrupt, typer.Abort):
            break
        cmd = user_in.strip()
        lower = cmd.lower()
        if not cmd:
            continue
        if lower in {"exit", "quit", "q"}:
            break
        try:
            if lower == "late":
                with console.status("Recalculating..."):
                    body = client.recalculate(session_id, LATE_REASON)
            elif lower == "diverged":
                with console.status("Recalculating..."):
                    body = client.recalculate(session_id, DIVERGED_REASON)
            elif lower == "confirm":
                body = client.confirm(session_id)
            elif lower == "discard":
                body = client.discard(session_id)
            elif lower == "reset":
                client.reset(session_id)
                console.print("Plan cleared. Type a reason or 'exit'.", style="yellow")
                continue
            else:
                # "swap <name>" and any free-text reason go straight to the planner.
                with console.status("Recalculating..."):
                    body = client.recalculate(session_id, cmd)
        except ApiError as e:
            trace_console.print(str(e), style="bold red")
            continue
        show(body, output_file)


@app.command()
def plan(
    location: str = typer.Option("New York, NY", "--location", "-l", help="Where the day happens."),
    vibe: int = typer.Option(60, "--vibe", min=0, max=100, help="0 = pure tourist, 100 = deep local."),
    vibe_description: str = typer.Option("", "--vibe-description", "-d", help="Free-text mood, e.g. 'neon and noodles'."),
    dietary: Optional[List[str]] = typer.Option(None, "--diet", help="Dietary restriction (repeatable)."),
    budget: str = typer.Option("MODERATE", "--budget", help="ECONOMY, MODERATE or LUXURY."),
    start: str = typer.Option("09:00", "--start", help="Trip start time (HH:MM)."),
    end: str = typer.Option("22:00", "--end", help="Trip end time (HH:MM)."),
    commitments: Optional[List[str]] = typer.Option(
        None, "--commit", "-c", help="Fixed commitment START[-END]@LOCATION[#note] (repeatable)."
    ),
    resolve: bool = typer.Option(False, "--resolve", help="Look up commitment locations before planning."),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Save Markdown to file."),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Keep adjusting the plan after the first response."),
) -> None:
    parsed = [parse_commitment(raw) for raw in commitments or []]
    client = _client()
    try:
        session = client.create_session(
            {
                "vibeScore": vibe,
                "vibeDescription": vibe_description,
                "dietary": dietary or [],
                "location": location,
                "budget": budget.upper(),
                "tripStartTime": start,
                "tripEndTime": end,
            }
        )
        session_id = session["id"]
        for body in parsed:
            body["resolve"] = resolve
            added = client.add_commitment(session_id, body)
            print_trace(added.get("trace") or [])
            c = added["commitment"]
            console.print(f"📌 {c['startTime']}-{c['endTime']} {c['location']}", style="cyan")
        with console.status("Planning your day..."):
            result = client.generate(session_id)
    except ApiError as e:
        trace_console.print(str(e), style="bold red")
        client.close()
        raise typer.Exit(code=1)

    show(result, output_file)
    if interactive:
        interactive_loop(client, session_id, output_file)
    client.close()


@app.command("resolve")
def resolve_place(
    query: str = typer.Argument(..., help="Place to look up."),
    near: Optional[str] = typer.Option(None, "--near", help="Context hint, e.g. a city."),
) -> None:
    client = _client()
    try:
        body = client.resolve(query, near)
    except ApiError as e:
        trace_console.print(str(e), style="bold red")
        raise typer.Exit(code=1)
    finally:
        client.close()
    print_trace(body.get("trace") or [])
    if not body.get("resolved"):
        console.print(f"Could not pin down '{query}'. Best guess: {body.get('address')}", style="yellow")
        return
    console.print(f"{body['name']}\n{body['address']}\n{body['lat']:.5f}, {body['lng']:.5f}")


if __name__ == "__main__":
    app()
