#!/usr/bin/python3
"""
Build, check and serve the site.

   ./sitetool.py build        # Render the changed pages into SITE_OUTPUT
   ./sitetool.py build force  # Render all the pages
   ./sitetool.py check        # Content integrity of all the pages
   ./sitetool.py serve        # Render on request
   ./sitetool.py state        # Display the configuration
"""

import sys
import asyncio
import builder
import checker
import http_server
import utilities

def do_build(args) -> int:
    """Render the site"""
    result = builder.build_site(utilities.SITE_SOURCE, utilities.SITE_OUTPUT,
                                utilities.SITE_INCLUDES, force='force' in args)
    for error in result.errors:
        print(error)
    return 0 if result.ok else 1

def do_check(_args) -> int:
    """Check all the pages"""
    reports = asyncio.run(checker.check_site(
        utilities.SITE_SOURCE, utilities.SITE_INCLUDES,
        check_external=bool(utilities.SITE_CHECK_EXTERNAL),
        timeout=utilities.SITE_TIMEOUT,
        concurrency=utilities.SITE_CONCURRENCY))
    nr_problems = 0
    for report in reports:
        for problem in report.problems:
            print(problem)
        nr_problems += len(report.problems)
    utilities.log(f'{len(reports)} pages checked, {nr_problems} problems')
    return 1 if nr_problems else 0

def do_serve(_args) -> int:
    """Run the HTTP server"""
    http_server.main()
    return 0

def do_state(_args) -> int:
    """Display the configuration"""
    utilities.print_state()
    return 0

def do_help(_args) -> int:
    """Print help and default configuration values"""
    print(__doc__)
    utilities.print_state()
    return 0

ACTIONS = {
    'build': do_build,
    'check': do_check,
    'serve': do_serve,
    'state': do_state,
    'help': do_help,
}

def main(argv) -> int:
    """MAIN"""
    if len(argv) < 2 or argv[1] not in ACTIONS:
        do_help(argv)
        return 1
    return ACTIONS[argv[1]](argv[2:])

def run():
    """Console script entry point"""
    sys.exit(main(sys.argv))

if __name__ == '__main__':
    run()
