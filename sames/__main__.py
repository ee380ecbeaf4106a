from sames.runner import main

main()
