"""DepthScope CLI."""

import asyncio
import sys

import click

from depthscope.app import DepthScopeApp


@click.group()
def cli():
    """DepthScope Command Line Interface."""
    pass


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--sim", is_flag=True, help="Use the simulated depth generator for every venue")
@click.option("--venue", "venues", multiple=True, help="Restrict to venue (repeatable)")
@click.option("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
def run(config, sim, venues, log_level):
    """Start polling venues and computing analytics until interrupted."""
    try:
        app = DepthScopeApp(
            config_path=config, sim=sim, venues=list(venues), log_level=log_level
        )
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--sim", is_flag=True, help="Use the simulated depth generator for every venue")
def smoke_test(config, sim):
    """Run a smoke test (initialize components and exit)."""
    try:
        app = DepthScopeApp(config_path=config, sim=sim)
        asyncio.run(app.initialize())
        click.echo(
            f"Smoke test passed: {len(app.feed_manager.venues)} venues initialized "
            f"({', '.join(app.feed_manager.venues)})."
        )
    except Exception as e:
        click.echo(f"Smoke test failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("venue")
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--sim", is_flag=True, help="Use the simulated depth generator")
@click.option("--size", default=1.0, type=float, help="Trade size for market-impact estimates")
def snapshot(venue, config, sim, size):
    """Poll one venue once and print an analytics summary."""
    try:
        app = DepthScopeApp(config_path=config, sim=sim, log_level="WARNING")
        summary = asyncio.run(app.snapshot_once(venue.lower(), trade_size=size))
    except Exception as e:
        click.echo(f"Snapshot failed: {e}", err=True)
        sys.exit(1)

    click.echo("=" * 60)
    click.echo(f"{summary['venue'].upper()} {summary['symbol']} @ {summary['timestamp']}")
    click.echo("=" * 60)
    click.echo(f"Best bid / ask:   {summary['best_bid']:.2f} / {summary['best_ask']:.2f}")
    click.echo(f"Spread:           {summary['spread']:.4f}")
    click.echo(f"Levels (bid/ask): {summary['levels'][0]} / {summary['levels'][1]}")
    click.echo(f"Imbalance:        {summary['imbalance']}")
    click.echo(f"Depth imbalance:  {summary['depth_imbalance']:+.3f}")
    click.echo(
        f"Impact ({size}):   buy {summary['buy_impact_pct']:.4f}% / "
        f"sell {summary['sell_impact_pct']:.4f}%"
        + (" (partial fill)" if summary["partial_fill"] else "")
    )
    click.echo(f"Pressure zones:   {len(summary['zones'])}")
    for line in summary["zones"]:
        click.echo(f"  - {line}")


if __name__ == "__main__":
    cli()

# Alias for __main__.py
main = cli
