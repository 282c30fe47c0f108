"""
Demo of the container executor.

Runs a small program in every supported language, streaming each line as it
arrives, then shows a summary table. Requires a running Docker engine and the
executor-base:latest image.
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from executor import Channel, create_orchestrator

console = Console()

SAMPLES = {
    "python": 'import sys\nprint("Hello from Python", sys.version.split()[0])\n',
    "javascript": 'console.log("Hello from Node", process.version);\n',
    "go": 'package main\n\nimport "fmt"\n\nfunc main() {\n\tfmt.Println("Hello from Go")\n}\n',
    "ruby": 'puts "Hello from Ruby #{RUBY_VERSION}"\n',
    "java": (
        "public class Main {\n"
        "    public static void main(String[] args) {\n"
        '        System.out.println("Hello from Java");\n'
        "    }\n"
        "}\n"
    ),
    "c": '#include <stdio.h>\n\nint main(void) {\n    printf("Hello from C\\n");\n    return 0;\n}\n',
    "cpp": '#include <iostream>\n\nint main() {\n    std::cout << "Hello from C++" << std::endl;\n}\n',
}

STYLES = {
    Channel.STDOUT: "white",
    Channel.STDERR: "red",
    Channel.SYSTEM: "dim cyan",
}


async def run_sample(orchestrator, language_id: str, code: str, dependencies: str = ""):
    """Stream one run to the console and return its result."""
    live = orchestrator.stream(code, language_id, dependencies)
    async for event in live:
        console.print(event.text, style=STYLES[event.channel], markup=False, highlight=False)
    return await live.result()


async def demo_dependencies(orchestrator):
    """Install a pip package for a single run."""
    console.print(Panel("[bold]Dependencies[/bold] (fresh install per run)", style="magenta", expand=False))
    code = "import requests\nprint('requests', requests.__version__)\n"
    return await run_sample(orchestrator, "python", code, "requests")


async def main():
    orchestrator = create_orchestrator()

    status = await orchestrator.check_runtime_health()
    if not status.ok:
        console.print(f"[red]Docker is not reachable:[/red] {status.error}")
        return

    results = {}
    for language_id, code in SAMPLES.items():
        console.print(Panel(f"[bold]{language_id}[/bold]", style="blue", expand=False))
        results[language_id] = await run_sample(orchestrator, language_id, code)
        console.print()

    results["python + requests"] = await demo_dependencies(orchestrator)

    table = Table(title="Summary")
    table.add_column("Language")
    table.add_column("Exit code", justify="right")
    table.add_column("Duration (ms)", justify="right")
    for name, result in results.items():
        style = "green" if result.success else "red"
        table.add_row(name, f"[{style}]{result.exit_code}[/{style}]", f"{result.duration_ms:.0f}")
    console.print(table)


if __name__ == "__main__":
    asyncio.run(main())
