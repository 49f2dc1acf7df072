from shortener.lifecycle import main

main()
