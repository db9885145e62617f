#!/usr/bin/env python3
"""
MemorySieve CLI
Inspect, feed and maintain the memory database from the shell
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from config_manager import ConfigManager
from engine import MemoryEngine
from memory_store import MemoryUnit
from retrieval import format_strength_bar


class MemorySieveCLI:
    """Command-line interface for MemorySieve"""

    def __init__(self, engine: Optional[MemoryEngine] = None):
        self.config = engine.config if engine else ConfigManager()
        self.engine = engine or MemoryEngine(self.config)
        self.engine.init()

    def _resolve(self, memory_id: str) -> Optional[MemoryUnit]:
        memory = self.engine.get_memory(memory_id)
        if memory is None:
            print(f"Memory not found: {memory_id}")
            sys.exit(1)
        return memory

    @staticmethod
    def _print_memory_line(i: int, memory: MemoryUnit):
        print(f"{i}. {format_strength_bar(memory.strength)} [{memory.store.upper()}] "
              f"[{memory.classification}] {memory.summary}")
        print(f"   ID: {memory.id[:8]} | strength {memory.strength:.2f} | "
              f"used {memory.frequency} times | {memory.status}")

    def cmd_status(self, args):
        """Show memory counts per store"""
        stats = self.engine.get_stats()

        print("🧠 MemorySieve Status")
        print("=" * 50)
        print(f"Database: {self.engine.store.db_path}")
        print(f"Total Memories: {stats['total']} ({stats['total_including_decayed']} including decayed)")
        print(f"Sessions: {stats['sessions']} | Events: {stats['events']}")
        print()

        print("📊 Memories by Store:")
        for store in ('stm', 'ltm'):
            s = stats[store]
            print(f"  {store.upper().ljust(4)}: {s['active']} active, {s['pinned']} pinned, "
                  f"{s['decayed']} decayed (avg strength: {s['avg_strength']:.2f})")
        print()

        embeddings = "on" if self.engine.searcher is not None else "off (word overlap only)"
        print(f"🔎 Embeddings: {embeddings}")

    def cmd_list(self, args):
        """List stored memories, strongest first"""
        memories = self.engine.list_memories(args.store, args.status, args.limit)

        print("📚 Memories")
        print("=" * 50)
        if not memories:
            print("No memories stored yet.")
            return

        for i, memory in enumerate(memories, 1):
            self._print_memory_line(i, memory)
            print()

    def cmd_search(self, args):
        """Search memories by text"""
        print(f"🔍 Searching memories for: {args.query}")
        print("=" * 50)

        results = self.engine.search(args.query, args.project, args.limit)
        if not results:
            print("No memories found matching that query.")
            return

        for i, item in enumerate(results, 1):
            print(f"{i}. [{item.classification}] {item.summary} ({item.relevance_score:.2f})")
            print(f"   ID: {item.id[:8]} | {item.store.upper()} | ~{item.estimated_tokens} tokens")
            print()

    def cmd_context(self, args):
        """Print the memory context a new session would receive"""
        project = args.project or str(Path.cwd())
        result = self.engine.build_injection_context(project, args.query or None)
        print(result.context)

        if args.verbose and result.suppressed:
            print()
            print("Suppressed (conflicting):")
            for entry in result.suppressed:
                print(f"  - {entry.memory.summary} (conflicts with: {entry.conflicts_with})")

    def cmd_learn(self, args):
        """Learn memories from text"""
        if args.text:
            text = args.text
        else:
            # Read from stdin (only if data is available)
            import select
            if not select.select([sys.stdin], [], [], 0.0)[0]:
                print("No input provided. Use --text or pipe text to stdin.")
                return
            text = sys.stdin.read()

        if not text.strip():
            print("No input provided. Use --text or pipe text to stdin.")
            return

        project = args.project or str(Path.cwd())
        session = self.engine.store.create_session(project, {"source": "cli"})
        result = self.engine.process_stop(session.id, conversation_text=text, reason="cli learn")
        self.engine.store.end_session(session.id)

        if args.quiet:
            return

        if not result.memory_ids:
            print("No memorable content found.")
            return

        for memory_id in result.memory_ids:
            memory = self.engine.get_memory(memory_id)
            print(f"  [{memory.store.upper()}] [{memory.classification}] {memory.summary[:80]}")
        print(f"\n✓ Learned {result.memories_created} new memories")
        if result.candidates_found > result.memories_created:
            print(f"  ({result.candidates_found - result.memories_created} candidates skipped)")

    def cmd_decay(self, args):
        """Run the decay pass"""
        updated = self.engine.apply_decay()
        print(f"✓ Decay applied to {updated} memories")

    def cmd_consolidate(self, args):
        """Run STM -> LTM consolidation"""
        promoted = self.engine.run_consolidation()
        print(f"✓ Promoted {promoted} memories to long-term storage")

    def _feedback(self, args, feedback_type: str, done: str):
        memory = self._resolve(args.id)
        self.engine.add_feedback(feedback_type, memory.id, getattr(args, 'note', None))
        print(f"✓ {done}: {memory.summary[:60]}")

    def cmd_pin(self, args):
        """Pin a memory so it never decays"""
        self._feedback(args, 'pin', 'Pinned')

    def cmd_forget(self, args):
        """Forget a memory"""
        self._feedback(args, 'forget', 'Forgotten')

    def cmd_remember(self, args):
        """Boost a memory and move it to long-term storage"""
        self._feedback(args, 'remember', 'Remembered')

    def cmd_memory(self, args):
        """Individual memory operations"""
        if args.action == 'get':
            memory = self._resolve(args.id)
            data = asdict(memory)
            embedding = data.pop('embedding')
            data['embedding_dimension'] = len(embedding) if embedding else 0
            print(json.dumps(data, indent=2, ensure_ascii=False))

    def cmd_config(self, args):
        """Configure MemorySieve settings"""
        if args.action == 'get':
            value = self.config.get(args.key)
            print(f"{args.key} = {value}")

        elif args.action == 'set':
            # Try to parse value as JSON for complex types
            try:
                value = json.loads(args.value)
            except json.JSONDecodeError:
                value = args.value

            self.config.set(args.key, value)
            print(f"✓ Set {args.key} = {value}")

        elif args.action == 'list':
            print("Current Configuration:")
            print(json.dumps(self.config.config, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='MemorySieve - Selective memory for coding agents',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    subparsers.add_parser('status', help='Show memory counts per store')

    list_parser = subparsers.add_parser('list', help='List stored memories')
    list_parser.add_argument('--store', choices=['stm', 'ltm'], help='Only this store')
    list_parser.add_argument('--status', choices=['active', 'decayed', 'pinned', 'forgotten'],
                             help='Only this status')
    list_parser.add_argument('--limit', type=int, default=20, help='Max memories to show')

    search_parser = subparsers.add_parser('search', help='Search memories by text')
    search_parser.add_argument('query', help='Search query')
    search_parser.add_argument('--project', help='Restrict to user-level and this project')
    search_parser.add_argument('--limit', type=int, default=10, help='Max results')

    context_parser = subparsers.add_parser('context', help='Show the context injected at session start')
    context_parser.add_argument('query', nargs='?', default='', help='Optional query to rank by')
    context_parser.add_argument('--project', help='Project path (default: current directory)')
    context_parser.add_argument('--verbose', '-v', action='store_true', help='Also list suppressed memories')

    learn_parser = subparsers.add_parser('learn', help='Learn memories from text')
    learn_parser.add_argument('--text', '-t', help='Text to learn from (default: stdin)')
    learn_parser.add_argument('--project', help='Project path (default: current directory)')
    learn_parser.add_argument('--quiet', '-q', action='store_true', help='Suppress output')

    subparsers.add_parser('decay', help='Apply time decay to active memories')
    subparsers.add_parser('consolidate', help='Promote qualifying STM memories to LTM')

    for name, help_text in (('pin', 'Pin a memory'), ('forget', 'Forget a memory'),
                            ('remember', 'Boost a memory into LTM')):
        feedback_parser = subparsers.add_parser(name, help=help_text)
        feedback_parser.add_argument('id', help='Memory ID or ID prefix')
        feedback_parser.add_argument('--note', help='Optional note stored with the feedback')

    memory_parser = subparsers.add_parser('memory', help='Individual memory operations')
    memory_parser.add_argument('action', choices=['get'], help='Action to perform')
    memory_parser.add_argument('id', help='Memory ID or ID prefix')

    config_parser = subparsers.add_parser('config', help='View or change configuration')
    config_parser.add_argument('action', choices=['get', 'set', 'list'], help='Config action')
    config_parser.add_argument('key', nargs='?', help='Config key (dot notation)')
    config_parser.add_argument('value', nargs='?', help='Config value')

    return parser


def main():
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = ConfigManager()
    logging.basicConfig(
        level=str(config.get('logging.level', 'WARNING')).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    cli = MemorySieveCLI(MemoryEngine(config))

    # Dispatch commands
    command_map = {
        'status': cli.cmd_status,
        'list': cli.cmd_list,
        'search': cli.cmd_search,
        'context': cli.cmd_context,
        'learn': cli.cmd_learn,
        'decay': cli.cmd_decay,
        'consolidate': cli.cmd_consolidate,
        'pin': cli.cmd_pin,
        'forget': cli.cmd_forget,
        'remember': cli.cmd_remember,
        'memory': cli.cmd_memory,
        'config': cli.cmd_config
    }

    handler = command_map.get(args.command)
    try:
        if handler:
            handler(args)
        else:
            print(f"Unknown command: {args.command}")
            sys.exit(1)
    finally:
        cli.engine.close()


if __name__ == '__main__':
    main()
