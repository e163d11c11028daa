from __future__ import annotations

import argparse
import pprint

from confluence_signal_bot.config import load_config
from confluence_signal_bot.profiles import PROFILES, profile_signature


def main():
    p = argparse.ArgumentParser(description="Print the resolved signal profile for a config")
    p.add_argument("--config", help="Path to YAML config (omit to list built-in profiles)")
    args = p.parse_args()

    if not args.config:
        for name, prof in sorted(PROFILES.items()):
            print(f"{name}: interval={prof.interval} threshold={prof.threshold} min_history={prof.min_history}")
        return

    cfg = load_config(args.config)
    print(f"PROFILE: {cfg.profile.name} (min_history={cfg.profile.min_history})")
    pprint.pprint(profile_signature(cfg.profile))
    print("\nNEWS WINDOW:")
    nf = cfg.news_filter()
    print(f"enabled={nf.enabled} window_minutes={nf.window_minutes}")
    for ev in nf.events:
        print(f"  {ev.time} UTC  {ev.label}")


if __name__ == "__main__":
    main()
