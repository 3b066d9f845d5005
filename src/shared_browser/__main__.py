from shared_browser.cli import main

main()
